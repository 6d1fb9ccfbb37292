"""
Core Pipeline Components

These components form the app generation pipeline:
1. Router - Prompt → IntentDecision (keyword rules, model fallback)
2. Analyzer - Prompt → AnalysisResult
3. Planner - AnalysisResult → PlannerResult (file-level plan)
4. Executor - Drives the coding agent (generation, completion, repair)
5. Builder - Runs the build command
6. Diagnostics - Parses and tiers compiler errors
7. Error Fixer - Build-fix loop, root causes first
8. Validator - Planned file verification
9. Phases - Phase controller and shared context
"""
from .router import IntentRouter
from .analyzer import Analyzer
from .planner import Planner
from .executor import Executor
from .builder import Builder, BuildError, Compiler, CompileOutput
from .diagnostics import DiagnosticClassifier, DiagnosticParser, select_target_tier
from .error_fixer import BuildFixLoop, FixLoopError, UnitFixer
from .validator import Validator
from .phases import Phase, PhaseContext, PhaseController
from .llm import GeminiReasoningClient, ReasoningClient, ReasoningError, ReasoningParseError
from .coding_agent import CLICodingAgent, CodingAgent, CodingAgentError

__all__ = [
    "IntentRouter",
    "Analyzer",
    "Planner",
    "Executor",
    "Builder",
    "BuildError",
    "Compiler",
    "CompileOutput",
    "DiagnosticClassifier",
    "DiagnosticParser",
    "select_target_tier",
    "BuildFixLoop",
    "FixLoopError",
    "UnitFixer",
    "Validator",
    "Phase",
    "PhaseContext",
    "PhaseController",
    "GeminiReasoningClient",
    "ReasoningClient",
    "ReasoningError",
    "ReasoningParseError",
    "CLICodingAgent",
    "CodingAgent",
    "CodingAgentError",
]
