"""
Schemas for the app generation pipeline

These schemas define the contracts between pipeline phases:
- Intent: routing decision with closed hint enumerations
- Plan: analysis and build plan produced by the reasoning model
- Phase: continue / retry / fatal outcomes and pipeline states
- Diagnostic: compiler errors, fix loop results, unit verification
"""
from .intent_schema import Operation, Platform, DeviceFamily, IntentDecision, default_decision
from .plan_schema import (
    Feature,
    AnalysisResult,
    Palette,
    DesignSystem,
    FilePlan,
    PropertyPlan,
    ModelPlan,
    Permission,
    BackendNeeds,
    PlannerResult,
    to_model_refs,
)
from .phase_schema import PhaseStatus, PipelineState, PhaseResult, PhaseRecord
from .diagnostic_schema import (
    DiagnosticTier,
    Diagnostic,
    FixAttempt,
    FixLoopResult,
    UnitStatus,
    CompletionReport,
)

__all__ = [
    # Intent
    "Operation",
    "Platform",
    "DeviceFamily",
    "IntentDecision",
    "default_decision",
    # Plan
    "Feature",
    "AnalysisResult",
    "Palette",
    "DesignSystem",
    "FilePlan",
    "PropertyPlan",
    "ModelPlan",
    "Permission",
    "BackendNeeds",
    "PlannerResult",
    "to_model_refs",
    # Phase
    "PhaseStatus",
    "PipelineState",
    "PhaseResult",
    "PhaseRecord",
    # Diagnostics
    "DiagnosticTier",
    "Diagnostic",
    "FixAttempt",
    "FixLoopResult",
    "UnitStatus",
    "CompletionReport",
]
