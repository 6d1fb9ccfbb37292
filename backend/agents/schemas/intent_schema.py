"""
Intent Schema - output of the route phase

The hint fields are closed enumerations. A value outside them fails
validation, which the route phase reports as a contract violation.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Operation(str, Enum):
    BUILD = "build"
    EDIT = "edit"
    FIX = "fix"


class Platform(str, Enum):
    IOS = "ios"
    WATCHOS = "watchos"
    TVOS = "tvos"
    VISIONOS = "visionos"
    MACOS = "macos"


class DeviceFamily(str, Enum):
    IPHONE = "iphone"
    IPAD = "ipad"
    UNIVERSAL = "universal"


class IntentDecision(BaseModel):
    """Routing decision for one request"""
    operation: Operation = Field(Operation.BUILD, description="What the user wants done")
    platform_hint: Platform = Field(Platform.IOS, description="Primary target platform")
    platform_hints: List[Platform] = Field(default_factory=list, description="All platforms mentioned")
    device_family_hint: Optional[DeviceFamily] = Field(None, description="Device family for ios builds")
    confidence: float = Field(0.5, description="0..1")
    reason: str = Field("", description="Why this routing was chosen")
    used_llm: bool = Field(False, description="Whether the reasoning model was consulted")

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


def default_decision(reason: str = "fallback") -> IntentDecision:
    """Safe routing used when neither rules nor the model decide"""
    return IntentDecision(
        operation=Operation.BUILD,
        platform_hint=Platform.IOS,
        device_family_hint=DeviceFamily.IPHONE,
        confidence=0.25,
        reason=reason,
    )


__all__ = ["Operation", "Platform", "DeviceFamily", "IntentDecision", "default_decision"]
