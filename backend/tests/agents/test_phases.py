"""
Tests for PhaseController and PhaseContext
"""
from typing import List

import pytest

from agents.core.phases import Phase, PhaseContext, PhaseContextError, PhaseController
from agents.schemas import PhaseResult, PhaseStatus, PipelineState


class ScriptedPhase(Phase):
    """Returns scripted results in order, repeating the last one"""

    def __init__(self, name: str, state: PipelineState, results: List, max_retries: int = 2):
        self.name = name
        self.success_state = state
        self.max_retries = max_retries
        self.results = list(results)
        self.seen_hints: List[List[str]] = []

    def run(self, ctx: PhaseContext) -> PhaseResult:
        self.seen_hints.append(ctx.hints)
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, Exception):
            raise item
        return item


class TestPhaseContext:
    """Test suite for PhaseContext"""

    def test_payload_is_copied(self):
        """Mutating a returned payload does not change the recorded one"""
        ctx = PhaseContext("prompt")
        ctx.record("plan", {"files": ["A.swift"]})

        first = ctx.payload("plan")
        first["files"].append("B.swift")

        assert ctx.payload("plan") == {"files": ["A.swift"]}

    def test_record_is_write_once(self):
        ctx = PhaseContext("prompt")
        ctx.record("route", 1)
        with pytest.raises(PhaseContextError):
            ctx.record("route", 2)

    def test_missing_payload(self):
        ctx = PhaseContext("prompt")
        assert ctx.has_payload("plan") is False
        with pytest.raises(PhaseContextError):
            ctx.payload("plan")

    def test_hints_are_read_only_copies(self):
        ctx = PhaseContext("prompt")
        ctx.add_hint("route: unclear")
        ctx.hints.append("ignored")
        assert ctx.hints == ["route: unclear"]


class TestPhaseController:
    """Test suite for PhaseController"""

    def test_all_phases_continue(self):
        first = ScriptedPhase("route", PipelineState.ROUTED, [PhaseResult.ok({"p": "ios"})])
        second = ScriptedPhase("analyze", PipelineState.ANALYZED, [PhaseResult.ok("analysis")])
        ctx = PhaseContext("prompt")

        outcome = PhaseController([first, second]).run(ctx)

        assert outcome.succeeded
        assert outcome.state == PipelineState.DONE
        assert ctx.payload("route") == {"p": "ios"}
        assert ctx.payload("analyze") == "analysis"
        assert [r.phase for r in outcome.records] == ["route", "analyze"]

    def test_retry_adds_hint(self):
        """A retry reason is visible to the next attempt"""
        phase = ScriptedPhase("plan", PipelineState.PLANNED, [
            PhaseResult.retry("no files planned"),
            PhaseResult.ok("plan"),
        ])
        ctx = PhaseContext("prompt")

        outcome = PhaseController([phase]).run(ctx)

        assert outcome.succeeded
        assert phase.seen_hints == [[], ["plan: no files planned"]]
        assert [r.status for r in outcome.records] == [PhaseStatus.RETRY, PhaseStatus.CONTINUE]

    def test_retry_ceiling_becomes_fatal(self):
        """Retries beyond the ceiling fail the pipeline"""
        phase = ScriptedPhase("plan", PipelineState.PLANNED, [PhaseResult.retry("bad plan")], max_retries=2)
        later = ScriptedPhase("build", PipelineState.BUILT, [PhaseResult.ok()])

        outcome = PhaseController([phase, later]).run(PhaseContext("prompt"))

        assert outcome.state == PipelineState.FAILED
        assert outcome.failed_phase == "plan"
        assert "retry limit reached (2)" in outcome.reason
        assert len(phase.seen_hints) == 3
        assert later.seen_hints == []

    def test_fatal_stops(self):
        phase = ScriptedPhase("fix", PipelineState.FIXED, [PhaseResult.fatal("cycle", payload={"left": 2})])

        outcome = PhaseController([phase]).run(PhaseContext("prompt"))

        assert outcome.failed_phase == "fix"
        assert outcome.reason == "cycle"
        assert outcome.fatal_payload == {"left": 2}
        assert len(phase.seen_hints) == 1

    def test_exception_is_fatal(self):
        """A phase that raises fails the run instead of crashing it"""
        phase = ScriptedPhase("analyze", PipelineState.ANALYZED, [RuntimeError("boom")])

        outcome = PhaseController([phase]).run(PhaseContext("prompt"))

        assert outcome.state == PipelineState.FAILED
        assert "boom" in outcome.reason
        assert outcome.records[0].error == "RuntimeError: boom"

    def test_failure_keeps_earlier_records(self):
        """Earlier successful attempts stay in the record after a failure"""
        phase = ScriptedPhase("route", PipelineState.ROUTED, [PhaseResult.ok()])
        failing = ScriptedPhase("analyze", PipelineState.ANALYZED, [PhaseResult.fatal("no")])
        controller = PhaseController([phase, failing])

        controller.run(PhaseContext("prompt"))

        assert controller.state == PipelineState.FAILED
        assert controller.records[0].status == PhaseStatus.CONTINUE

    def test_phase_that_does_not_apply_is_skipped(self):
        """A skipped phase never runs, records nothing and does not block later phases"""
        route = ScriptedPhase("route", PipelineState.ROUTED, [PhaseResult.ok({"operation": "fix"})])
        plan = ScriptedPhase("plan", PipelineState.PLANNED, [PhaseResult.ok("plan")])
        plan.applies = lambda ctx: ctx.payload("route")["operation"] == "build"
        fix = ScriptedPhase("fix", PipelineState.FIXED, [PhaseResult.ok("clean")])
        ctx = PhaseContext("prompt")

        outcome = PhaseController([route, plan, fix]).run(ctx)

        assert outcome.succeeded
        assert plan.seen_hints == []
        assert not ctx.has_payload("plan")
        assert [r.phase for r in outcome.records] == ["route", "fix"]

    def test_duplicate_names_rejected(self):
        a = ScriptedPhase("route", PipelineState.ROUTED, [PhaseResult.ok()])
        b = ScriptedPhase("route", PipelineState.ROUTED, [PhaseResult.ok()])
        with pytest.raises(ValueError):
            PhaseController([a, b])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
