"""
Diagnostic Schemas - compiler diagnostics, fix loop outcomes, unit verification
"""
from enum import IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DiagnosticTier(IntEnum):
    """
    Repair priority. Lower tiers are root causes and are fixed first.
    """
    STRUCTURAL = 1
    CONFORMANCE = 2
    MISSING_ARGUMENTS = 3
    SCOPE = 4
    TYPE_MISMATCH = 5


class Diagnostic(BaseModel):
    """One compiler error"""
    unit: Optional[str] = Field(None, description="Source unit path, when the compiler reported one")
    line: int = 0
    column: int = 0
    message: str
    tier: DiagnosticTier = DiagnosticTier.TYPE_MISMATCH
    confidence: float = Field(1.0, description="How sure the classifier is about the tier")

    def location(self) -> str:
        if self.unit is None:
            return "<unknown>"
        return f"{self.unit}:{self.line}:{self.column}"


class FixAttempt(BaseModel):
    """What one loop iteration tried"""
    iteration: int
    tier: DiagnosticTier
    units: List[str] = Field(default_factory=list)
    diagnostic_count: int = 0


class FixLoopResult(BaseModel):
    """Outcome of a build-fix loop run"""
    success: bool
    iterations: int = Field(0, description="Number of compiles performed")
    fixes_applied: int = 0
    remaining: List[Diagnostic] = Field(default_factory=list)
    attempts: List[FixAttempt] = Field(default_factory=list)
    reason: str = ""
    scope: Optional[List[str]] = Field(None, description="Units the loop was limited to (recovery mode)")


class UnitStatus(BaseModel):
    """Verification state of one planned unit"""
    planned_path: str
    resolved_path: str = ""
    expected_type: str = ""
    exists: bool = False
    valid: bool = False
    reason: str = ""


class CompletionReport(BaseModel):
    """Coverage of planned units in the generated project"""
    total_planned: int = 0
    valid_count: int = 0
    missing: List[UnitStatus] = Field(default_factory=list)
    invalid: List[UnitStatus] = Field(default_factory=list)
    complete: bool = False

    def unresolved_paths(self) -> List[str]:
        return [s.planned_path for s in self.missing + self.invalid]

    def summary(self) -> Dict[str, int]:
        return {
            "total_planned": self.total_planned,
            "valid": self.valid_count,
            "missing": len(self.missing),
            "invalid": len(self.invalid),
        }


__all__ = [
    "DiagnosticTier",
    "Diagnostic",
    "FixAttempt",
    "FixLoopResult",
    "UnitStatus",
    "CompletionReport",
]
