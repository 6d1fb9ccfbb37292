"""
Error Fixer - the build-fix loop

Responsibilities:
- Compile, parse and classify diagnostics
- Fix only the target tier (root causes first) across every affected unit
- Stop on a clean build, on the iteration ceiling, or when the same
  diagnostics come back after a fix (cycle)
- Recovery mode: restrict fixes to a given set of units

Key principle: root causes first. A structural error in one unit produces
many symptoms elsewhere; fixing symptoms first wastes iterations.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Set

from config import COMPILE_RETRIES, MAX_FIX_ITERATIONS
from agents.core.builder import BuildError, Compiler, CompileOutput
from agents.core.diagnostics import (
    DiagnosticClassifier,
    DiagnosticParser,
    diagnostic_signature,
    group_by_unit,
    select_target_tier,
)
from agents.schemas import Diagnostic, DiagnosticTier, FixAttempt, FixLoopResult

logger = logging.getLogger(__name__)


class FixLoopError(Exception):
    """Raised when the compiler keeps failing to run"""
    pass


class UnitFixer(ABC):
    """Applies repairs to source units"""

    @abstractmethod
    def regenerate(self, units: List[str], diagnostics: Dict[str, List[Diagnostic]]) -> None:
        """Rewrite whole units (structural damage)"""
        ...

    @abstractmethod
    def patch(self, tier: DiagnosticTier, diagnostics: Dict[Optional[str], List[Diagnostic]]) -> None:
        """Make targeted edits for one tier; key None holds unit-less diagnostics"""
        ...


class BuildFixLoop:
    """
    Build-verify-repair loop over one project.
    """

    def __init__(
        self,
        compiler: Compiler,
        fixer: UnitFixer,
        parser: Optional[DiagnosticParser] = None,
        classifier: Optional[DiagnosticClassifier] = None,
        max_iterations: int = MAX_FIX_ITERATIONS,
        compile_retries: int = COMPILE_RETRIES,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.compiler = compiler
        self.fixer = fixer
        self.parser = parser or DiagnosticParser()
        self.classifier = classifier or DiagnosticClassifier()
        self.max_iterations = max_iterations
        self.compile_retries = compile_retries
        self.progress_callback = progress_callback

    def _log(self, msg: str) -> None:
        if self.progress_callback:
            self.progress_callback(msg)
        logger.info(f"[FixLoop] {msg}")

    def _compile(self) -> CompileOutput:
        last_error: Optional[BuildError] = None
        for attempt in range(self.compile_retries + 1):
            try:
                return self.compiler.compile()
            except BuildError as e:
                last_error = e
                self._log(f"Compiler failed to run (attempt {attempt + 1}): {e}")
        raise FixLoopError(f"Compiler could not run: {last_error}") from last_error

    def diagnose(self, output: CompileOutput) -> List[Diagnostic]:
        """Classified diagnostics for one build output"""
        diagnostics = self.classifier.classify(self.parser.parse(output.output))
        if not diagnostics and not output.succeeded:
            tail = output.output.strip().splitlines()[-1:] or ["build failed without diagnostics"]
            diagnostics = [Diagnostic(unit=None, message=tail[0], tier=DiagnosticTier.TYPE_MISMATCH, confidence=0.3)]
        return diagnostics

    def run(self, scope: Optional[Set[str]] = None) -> FixLoopResult:
        """
        Run the loop until the build is clean or the loop gives up.

        Args:
            scope: When set, only these units are regenerated or patched

        Returns:
            FixLoopResult; success only when a compile reported no diagnostics

        Raises:
            FixLoopError: If the compiler cannot be run after retries
        """
        scope_list = sorted(scope) if scope is not None else None
        seen_signatures: Set[str] = set()
        attempts: List[FixAttempt] = []
        fixes_applied = 0
        diagnostics: List[Diagnostic] = []

        def finish(success: bool, iteration: int, reason: str) -> FixLoopResult:
            return FixLoopResult(
                success=success,
                iterations=iteration,
                fixes_applied=fixes_applied,
                remaining=[] if success else diagnostics,
                attempts=attempts,
                reason=reason,
                scope=scope_list,
            )

        for iteration in range(1, self.max_iterations + 1):
            output = self._compile()
            diagnostics = self.diagnose(output)
            if not diagnostics:
                self._log(f"Iteration {iteration}: clean build")
                return finish(True, iteration, "clean build")

            signature = diagnostic_signature(diagnostics)
            if fixes_applied and signature in seen_signatures:
                self._log(f"Iteration {iteration}: diagnostics unchanged after fix, stopping")
                return finish(False, iteration, "cycle: same diagnostics after fix")
            seen_signatures.add(signature)

            if iteration == self.max_iterations:
                break

            candidates = diagnostics
            if scope is not None:
                candidates = [d for d in diagnostics if d.unit in scope]
                if not candidates:
                    return finish(False, iteration, "remaining diagnostics are outside the recovery scope")

            tier = select_target_tier(candidates)
            targeted = [d for d in candidates if d.tier == tier]
            grouped = group_by_unit(targeted)
            units = sorted(u for u in grouped if u is not None)
            self._log(
                f"Iteration {iteration}: {len(diagnostics)} diagnostics, fixing tier {tier.name} "
                f"in {len(units)} unit(s)"
            )

            if tier == DiagnosticTier.STRUCTURAL and units:
                self.fixer.regenerate(units, {u: grouped[u] for u in units})
                if None in grouped:
                    self.fixer.patch(tier, {None: grouped[None]})
            else:
                self.fixer.patch(tier, grouped)
            fixes_applied += 1
            attempts.append(FixAttempt(iteration=iteration, tier=tier, units=units, diagnostic_count=len(targeted)))

        self._log(f"Gave up after {self.max_iterations} builds with {len(diagnostics)} diagnostics left")
        return finish(False, self.max_iterations, "iteration limit reached")


__all__ = ["BuildFixLoop", "UnitFixer", "FixLoopError"]
