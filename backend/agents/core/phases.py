"""
Phase Controller - runs pipeline phases as a small state machine

Responsibilities:
- Run phases in order, advancing the pipeline state on `continue`
- Re-run a phase on `retry`, feeding the reason back as a hint, up to the
  phase's retry ceiling (then the retry becomes `fatal`)
- Stop on `fatal`; a phase that raises is logged and treated as `fatal`
- Skip phases that do not apply to the run (e.g. planning when fixing)
- Keep a record of every attempt

Phases never see each other directly. They share a PhaseContext: the
original prompt, hints accumulated from retries, provider prompt
contributions, and the recorded payload of every finished phase.
"""
import copy
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config import MAX_PHASE_RETRIES
from agents.schemas import PhaseRecord, PhaseResult, PhaseStatus, PipelineState
from integrations.contract import PromptContribution

logger = logging.getLogger(__name__)


class PhaseContextError(Exception):
    """Raised when a phase payload is recorded twice or read before it exists"""
    pass


class PhaseContext:
    """
    State shared by the phases of one pipeline run.

    Payloads are write-once and handed out as deep copies, so a later
    phase cannot change what an earlier phase produced. `resources` holds
    live collaborators (executor, project paths) that are shared as-is.
    """

    def __init__(self, prompt: str):
        self.prompt = prompt
        self._hints: List[str] = []
        self._payloads: Dict[str, Any] = {}
        self.contributions: List[PromptContribution] = []
        self.resources: Dict[str, Any] = {}

    @property
    def hints(self) -> List[str]:
        return list(self._hints)

    def add_hint(self, hint: str) -> None:
        self._hints.append(hint)

    def record(self, name: str, payload: Any) -> None:
        if name in self._payloads:
            raise PhaseContextError(f"Payload for phase '{name}' already recorded")
        self._payloads[name] = copy.deepcopy(payload)

    def payload(self, name: str) -> Any:
        if name not in self._payloads:
            raise PhaseContextError(f"No payload recorded for phase '{name}'")
        return copy.deepcopy(self._payloads[name])

    def has_payload(self, name: str) -> bool:
        return name in self._payloads


class Phase(ABC):
    """One step of the pipeline"""

    name: str = ""
    success_state: PipelineState = PipelineState.PENDING
    max_retries: int = MAX_PHASE_RETRIES

    def applies(self, ctx: PhaseContext) -> bool:
        """Whether this phase takes part in the run; skipped phases leave no record"""
        return True

    @abstractmethod
    def run(self, ctx: PhaseContext) -> PhaseResult:
        ...


@dataclass
class ControllerOutcome:
    """Where the controller stopped and why"""
    state: PipelineState
    failed_phase: Optional[str] = None
    reason: str = ""
    records: List[PhaseRecord] = field(default_factory=list)
    fatal_payload: Any = None

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE


class PhaseController:
    """
    Runs phases in order until DONE or FAILED.
    """

    def __init__(self, phases: List[Phase], progress_callback: Optional[Callable[[str], None]] = None):
        names = [p.name for p in phases]
        if len(set(names)) != len(names):
            raise ValueError(f"Phase names must be unique: {names}")
        self.phases = phases
        self.progress_callback = progress_callback
        self.state = PipelineState.PENDING
        self.records: List[PhaseRecord] = []

    def _log(self, msg: str) -> None:
        if self.progress_callback:
            self.progress_callback(msg)
        logger.info(f"[PhaseController] {msg}")

    def _attempt(self, phase: Phase, ctx: PhaseContext, attempt: int) -> PhaseResult:
        started = time.monotonic()
        error = None
        try:
            result = phase.run(ctx)
        except Exception as e:
            logger.exception(f"[PhaseController] Phase '{phase.name}' raised")
            error = f"{type(e).__name__}: {e}"
            result = PhaseResult.fatal(f"unexpected error in {phase.name}: {error}")
        self.records.append(PhaseRecord(
            phase=phase.name,
            attempt=attempt,
            status=result.status,
            reason=result.reason,
            duration_seconds=round(time.monotonic() - started, 3),
            error=error,
        ))
        return result

    def _fail(self, phase: Phase, reason: str, payload: Any = None) -> ControllerOutcome:
        self.state = PipelineState.FAILED
        self._log(f"✗ {phase.name} failed: {reason}")
        return ControllerOutcome(
            state=self.state,
            failed_phase=phase.name,
            reason=reason,
            records=list(self.records),
            fatal_payload=payload,
        )

    def run(self, ctx: PhaseContext) -> ControllerOutcome:
        """
        Run every phase.

        Returns:
            ControllerOutcome with state DONE, or FAILED plus the failing phase
        """
        for phase in self.phases:
            if not phase.applies(ctx):
                self._log(f"Phase {phase.name} skipped")
                continue
            attempt = 0
            while True:
                attempt += 1
                self._log(f"Phase {phase.name} (attempt {attempt})")
                result = self._attempt(phase, ctx, attempt)

                if result.status == PhaseStatus.CONTINUE:
                    ctx.record(phase.name, result.payload)
                    self.state = phase.success_state
                    break

                if result.status == PhaseStatus.RETRY:
                    ctx.add_hint(f"{phase.name}: {result.reason}")
                    if attempt > phase.max_retries:
                        return self._fail(phase, f"retry limit reached ({phase.max_retries}): {result.reason}")
                    self._log(f"⚠ {phase.name} will retry: {result.reason}")
                    continue

                return self._fail(phase, result.reason, result.payload)

        self.state = PipelineState.DONE
        return ControllerOutcome(state=self.state, records=list(self.records))


__all__ = [
    "Phase",
    "PhaseContext",
    "PhaseContextError",
    "PhaseController",
    "ControllerOutcome",
]
