"""
Analyzer - prompt → AnalysisResult

Responsibilities:
- Ask the reasoning model for app name, features and core flow
- Shape the request using the routing decision and retry hints
"""
import logging
from typing import List, Optional

from agents.core.llm import ReasoningClient
from agents.schemas import AnalysisResult, IntentDecision

logger = logging.getLogger(__name__)

ANALYZER_SYSTEM_PROMPT = """You are a product analyst for native Apple-platform apps.
Read the request and produce:
- app_name: short PascalCase name, letters and digits only
- description: one paragraph
- features: the features for a focused first version (name + description)
- core_flow: the main thing a user does, step by step
- deferred: reasonable ideas you are leaving out of the first version
Prefer fewer, well-defined features over many vague ones."""


class Analyzer:

    def __init__(self, reasoning: ReasoningClient):
        self.reasoning = reasoning

    def analyze(self, prompt: str, intent: IntentDecision, hints: Optional[List[str]] = None) -> AnalysisResult:
        """
        Args:
            prompt: The user's request
            intent: Routing decision from the route phase
            hints: Notes from earlier failed attempts

        Returns:
            AnalysisResult

        Raises:
            ReasoningParseError / ReasoningError from the reasoning client
        """
        parts = [
            f"Target platform: {intent.platform_hint.value}",
        ]
        if intent.device_family_hint is not None:
            parts.append(f"Device family: {intent.device_family_hint.value}")
        parts.append("")
        parts.append(f"Request:\n{prompt}")
        if hints:
            parts.append("")
            parts.append("Previous attempts failed for these reasons, avoid them:")
            parts.extend(f"- {h}" for h in hints)

        result = self.reasoning.generate(ANALYZER_SYSTEM_PROMPT, "\n".join(parts), AnalysisResult)
        logger.info(f"[Analyzer] {result.app_name}: {len(result.features)} features")
        return result


__all__ = ["Analyzer", "ANALYZER_SYSTEM_PROMPT"]
