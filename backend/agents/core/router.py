"""
Intent Router - route phase

Responsibilities:
- Decide operation, platform and device family for a request
- Use local keyword rules first
- Ask the reasoning model only when the rules find nothing or conflict
- Fall back to a safe default decision if the model fails
"""
import logging
import re
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from agents.core.llm import ReasoningClient, ReasoningError, ReasoningParseError
from agents.schemas import DeviceFamily, IntentDecision, Operation, Platform, default_decision

logger = logging.getLogger(__name__)

# Ordered: more specific phrases first
PLATFORM_RULES: List[Tuple[Platform, List[str]]] = [
    (Platform.WATCHOS, [r"\bapple watch\b", r"\bwatchos\b", r"\bwatch app\b", r"\bsmartwatch\b"]),
    (Platform.TVOS, [r"\bapple tv\b", r"\btvos\b"]),
    (Platform.VISIONOS, [r"\bvision ?pro\b", r"\bvisionos\b", r"\bspatial\b"]),
    (Platform.MACOS, [r"\bmacos\b", r"\bmac app\b", r"\bfor mac\b", r"\bmenu ?bar\b"]),
    (Platform.IOS, [r"\biphone\b", r"\bipad\b", r"\bios\b"]),
]

DEVICE_RULES: List[Tuple[DeviceFamily, List[str]]] = [
    (DeviceFamily.UNIVERSAL, [r"\biphone and ipad\b", r"\bipad and iphone\b", r"\buniversal\b"]),
    (DeviceFamily.IPAD, [r"\bipad\b"]),
    (DeviceFamily.IPHONE, [r"\biphone\b"]),
]

OPERATION_RULES: List[Tuple[Operation, List[str]]] = [
    (Operation.FIX, [r"^\s*fix\b", r"\bbuild (is )?(failing|broken)\b", r"\bdoesn'?t compile\b"]),
    (Operation.EDIT, [r"^\s*(add|change|update|rename|remove)\b"]),
]

ROUTER_SYSTEM_PROMPT = """You route app-building requests for Apple platforms.
Decide:
- operation: build (new app), edit (change an existing app) or fix (repair a failing build)
- platform_hint: ios, watchos, tvos, visionos or macos
- device_family_hint: iphone, ipad or universal (only for ios)
Give a confidence between 0 and 1 and a one-sentence reason."""


class RouterAnswer(BaseModel):
    """What the reasoning model is asked to return"""
    operation: Operation = Operation.BUILD
    platform_hint: Platform = Platform.IOS
    device_family_hint: Optional[DeviceFamily] = None
    confidence: float = Field(0.5)
    reason: str = ""


def _matches(text: str, patterns: List[str]) -> bool:
    return any(re.search(p, text) for p in patterns)


class IntentRouter:
    """
    Routes a prompt to an IntentDecision.
    """

    def __init__(self, reasoning: Optional[ReasoningClient] = None):
        self.reasoning = reasoning

    def match_platforms(self, prompt: str) -> List[Platform]:
        text = prompt.lower()
        found: List[Platform] = []
        for platform, patterns in PLATFORM_RULES:
            if _matches(text, patterns):
                found.append(platform)
        return found

    def match_device_family(self, prompt: str) -> Optional[DeviceFamily]:
        text = prompt.lower()
        for family, patterns in DEVICE_RULES:
            if _matches(text, patterns):
                return family
        return None

    def match_operation(self, prompt: str) -> Operation:
        text = prompt.lower()
        for operation, patterns in OPERATION_RULES:
            if _matches(text, patterns):
                return operation
        return Operation.BUILD

    def rule_decision(self, prompt: str) -> Optional[IntentDecision]:
        """
        Decide with keyword rules alone.

        Returns:
            A decision when exactly one platform is named, else None
        """
        platforms = self.match_platforms(prompt)
        if len(platforms) != 1:
            return None
        platform = platforms[0]
        family = self.match_device_family(prompt) if platform == Platform.IOS else None
        if platform == Platform.IOS and family is None:
            family = DeviceFamily.IPHONE
        return IntentDecision(
            operation=self.match_operation(prompt),
            platform_hint=platform,
            platform_hints=platforms,
            device_family_hint=family,
            confidence=0.9,
            reason=f"keyword match: {platform.value}",
        )

    def route(self, prompt: str, hints: Optional[List[str]] = None) -> IntentDecision:
        """
        Route a prompt.

        Args:
            prompt: The user's request
            hints: Retry hints from earlier attempts

        Returns:
            IntentDecision (never raises for model failures)

        Raises:
            ReasoningParseError: The model answered with values outside the
                allowed enumerations
        """
        decision = self.rule_decision(prompt)
        if decision is not None:
            logger.info(f"[Router] {decision.reason}")
            return decision

        platforms = self.match_platforms(prompt)
        if self.reasoning is None:
            return self._fallback(prompt, platforms, "no reasoning model configured")

        user = prompt
        if hints:
            user += "\n\nNotes from previous attempts:\n" + "\n".join(f"- {h}" for h in hints)
        try:
            answer = self.reasoning.generate(ROUTER_SYSTEM_PROMPT, user, RouterAnswer)
        except ReasoningParseError:
            raise
        except ReasoningError as e:
            logger.warning(f"[Router] Reasoning failed, using default routing: {e}")
            return self._fallback(prompt, platforms, f"reasoning unavailable: {e}")

        seen: Set[Platform] = set(platforms)
        return IntentDecision(
            operation=answer.operation,
            platform_hint=answer.platform_hint,
            platform_hints=platforms if answer.platform_hint in seen else [answer.platform_hint] + platforms,
            device_family_hint=answer.device_family_hint if answer.platform_hint == Platform.IOS else None,
            confidence=answer.confidence,
            reason=answer.reason or "reasoning model",
            used_llm=True,
        )

    def _fallback(self, prompt: str, platforms: List[Platform], reason: str) -> IntentDecision:
        decision = default_decision(reason)
        decision.operation = self.match_operation(prompt)
        decision.platform_hints = platforms
        return decision


__all__ = ["IntentRouter", "RouterAnswer", "PLATFORM_RULES"]
