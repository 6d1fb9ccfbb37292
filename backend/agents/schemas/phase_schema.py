"""
Phase Schema - the contract between the phase controller and each phase
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PhaseStatus(str, Enum):
    CONTINUE = "continue"
    RETRY = "retry"
    FATAL = "fatal"


class PipelineState(str, Enum):
    PENDING = "pending"
    ROUTED = "routed"
    TARGETED = "targeted"
    EDITED = "edited"
    ANALYZED = "analyzed"
    PLANNED = "planned"
    BUILT = "built"
    FIXED = "fixed"
    RECOVERED = "recovered"
    DONE = "done"
    FAILED = "failed"


class PhaseResult(BaseModel):
    """Outcome of one phase attempt"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: PhaseStatus
    payload: Any = None
    reason: str = ""

    @classmethod
    def ok(cls, payload: Any = None) -> "PhaseResult":
        return cls(status=PhaseStatus.CONTINUE, payload=payload)

    @classmethod
    def retry(cls, reason: str) -> "PhaseResult":
        return cls(status=PhaseStatus.RETRY, reason=reason)

    @classmethod
    def fatal(cls, reason: str, payload: Any = None) -> "PhaseResult":
        return cls(status=PhaseStatus.FATAL, reason=reason, payload=payload)


class PhaseRecord(BaseModel):
    """Log entry kept by the controller for each phase attempt"""
    phase: str
    attempt: int
    status: PhaseStatus
    reason: str = ""
    duration_seconds: float = 0.0
    error: Optional[str] = Field(None, description="Exception text when a phase crashed")


__all__ = ["PhaseStatus", "PipelineState", "PhaseResult", "PhaseRecord"]
