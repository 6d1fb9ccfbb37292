"""
Diagnostics - compiler output → classified Diagnostics

Responsibilities:
- Parse "path:line:col: error: message" records out of build logs
- Assign each diagnostic one of five repair tiers
- Promote a unit to Structural when many "not found" errors cluster at its top
- Pick the tier the fix loop should target next
- Produce normalized signatures for cycle detection
"""
import hashlib
import re
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from config import STRUCTURAL_THRESHOLD, STRUCTURAL_WINDOW_LINES
from agents.schemas import Diagnostic, DiagnosticTier

_LOCATED = re.compile(
    r"^(?P<path>[^\s:][^:\n]*?):(?P<line>\d+):(?P<col>\d+):\s*(?:fatal\s+)?error:\s*(?P<msg>.+?)\s*$",
    re.MULTILINE,
)
_UNLOCATED = re.compile(r"^(?:fatal\s+)?error:\s*(?P<msg>.+?)\s*$", re.MULTILINE)

UNCLASSIFIED_CONFIDENCE = 0.5

# Order matters: the first matching tier wins
TIER_RULES: List[Tuple[DiagnosticTier, List[Pattern]]] = [
    (DiagnosticTier.STRUCTURAL, [re.compile(p, re.IGNORECASE) for p in [
        r"expected '[}\])]'",
        r"expected declaration",
        r"expected expression",
        r"expected '\{'",
        r"extraneous '[}\])]'",
        r"unterminated string",
        r"consecutive (statements|declarations) on a line",
        r"invalid redeclaration",
        r"expected ',' separator",
        r"unexpected end of file",
    ]]),
    (DiagnosticTier.CONFORMANCE, [re.compile(p, re.IGNORECASE) for p in [
        r"does not conform to protocol",
        r"does not conform to",
        r"protocol requires",
        r"requires that .* conform",
        r"cannot conform to",
        r"non-sendable",
        r"main actor-isolated",
        r"must be marked",
    ]]),
    (DiagnosticTier.MISSING_ARGUMENTS, [re.compile(p, re.IGNORECASE) for p in [
        r"missing arguments? for parameters?",
        r"missing argument",
        r"extra argument",
        r"incorrect argument labels?",
        r"argument passed to call that takes no arguments",
    ]]),
    (DiagnosticTier.SCOPE, [re.compile(p, re.IGNORECASE) for p in [
        r"cannot find .* in scope",
        r"use of unresolved identifier",
        r"unresolved",
        r"has no member",
        r"no such module",
        r"not found",
    ]]),
    (DiagnosticTier.TYPE_MISMATCH, [re.compile(p, re.IGNORECASE) for p in [
        r"cannot convert value",
        r"cannot assign value of type",
        r"cannot convert return expression",
        r"type mismatch",
        r"mismatched types",
        r"value of optional type",
        r"cannot be used as",
    ]]),
]

_NOT_FOUND = re.compile(r"not found|unresolved|cannot find .* in scope", re.IGNORECASE)


class DiagnosticParser:
    """
    Extracts error records from compiler output.
    """

    def __init__(self, project_dir: Optional[Path] = None):
        self.project_dir = Path(project_dir).resolve() if project_dir else None

    def _relative(self, path: str) -> str:
        if self.project_dir is None or not Path(path).is_absolute():
            return path
        try:
            return Path(path).resolve().relative_to(self.project_dir).as_posix()
        except ValueError:
            return path

    def parse(self, output: str) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        seen = set()
        located_spans = []
        for match in _LOCATED.finditer(output):
            located_spans.append(match.span())
            unit = self._relative(match.group("path"))
            key = (unit, match.group("line"), match.group("col"), match.group("msg"))
            if key in seen:
                continue
            seen.add(key)
            diagnostics.append(Diagnostic(
                unit=unit,
                line=int(match.group("line")),
                column=int(match.group("col")),
                message=match.group("msg"),
            ))
        for match in _UNLOCATED.finditer(output):
            if any(start <= match.start() < end for start, end in located_spans):
                continue
            key = (None, "0", "0", match.group("msg"))
            if key in seen:
                continue
            seen.add(key)
            diagnostics.append(Diagnostic(unit=None, message=match.group("msg")))
        return diagnostics


class DiagnosticClassifier:
    """
    Assigns repair tiers.
    """

    def __init__(self, window_lines: int = STRUCTURAL_WINDOW_LINES, threshold: int = STRUCTURAL_THRESHOLD):
        self.window_lines = window_lines
        self.threshold = threshold

    def tier_for(self, message: str) -> Tuple[DiagnosticTier, float]:
        for tier, patterns in TIER_RULES:
            if any(p.search(message) for p in patterns):
                return tier, 1.0
        return DiagnosticTier.TYPE_MISMATCH, UNCLASSIFIED_CONFIDENCE

    def structural_units(self, diagnostics: Iterable[Diagnostic]) -> List[str]:
        """Units with enough "not found" errors near their top to look malformed"""
        counts: Dict[str, int] = defaultdict(int)
        for d in diagnostics:
            if d.unit is not None and 0 < d.line <= self.window_lines and _NOT_FOUND.search(d.message):
                counts[d.unit] += 1
        return [unit for unit, count in counts.items() if count >= self.threshold]

    def classify(self, diagnostics: List[Diagnostic]) -> List[Diagnostic]:
        classified = []
        for d in diagnostics:
            tier, confidence = self.tier_for(d.message)
            classified.append(d.model_copy(update={"tier": tier, "confidence": confidence}))

        promoted = set(self.structural_units(classified))
        if promoted:
            classified = [
                d.model_copy(update={"tier": DiagnosticTier.STRUCTURAL, "confidence": 1.0}) if d.unit in promoted else d
                for d in classified
            ]
        return classified


def select_target_tier(diagnostics: List[Diagnostic]) -> Optional[DiagnosticTier]:
    """
    The tier to fix next.

    The tier whose best diagnostic has the highest confidence wins; ties go
    to the lowest tier. With uniform confidence this is simply the lowest
    tier present.
    """
    best: Dict[DiagnosticTier, float] = {}
    for d in diagnostics:
        best[d.tier] = max(best.get(d.tier, 0.0), d.confidence)
    if not best:
        return None
    return min(best, key=lambda tier: (-best[tier], int(tier)))


_NUMBERS = re.compile(r"\d+")
_SPACES = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    """Lower-case, digits dropped, whitespace collapsed."""
    text = _NUMBERS.sub("", message.lower())
    return _SPACES.sub(" ", text).strip(" .")


def diagnostic_signature(diagnostics: List[Diagnostic]) -> str:
    """Stable fingerprint of a diagnostic set, independent of line numbers"""
    parts = sorted({f"{d.unit or ''}|{int(d.tier)}|{normalize_message(d.message)}" for d in diagnostics})
    return hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()


def group_by_unit(diagnostics: List[Diagnostic]) -> Dict[Optional[str], List[Diagnostic]]:
    grouped: Dict[Optional[str], List[Diagnostic]] = {}
    for d in diagnostics:
        grouped.setdefault(d.unit, []).append(d)
    return grouped


__all__ = [
    "DiagnosticParser",
    "DiagnosticClassifier",
    "select_target_tier",
    "normalize_message",
    "diagnostic_signature",
    "group_by_unit",
    "TIER_RULES",
]
