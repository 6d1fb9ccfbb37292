"""
Main Pipeline - Orchestrates the complete app generation flow

This module wires the phases together. The routed operation picks the path:

    build: Route → Analyze → Plan → Build → Fix → Recover
    edit:  Route → Target → Edit → Fix
    fix:   Route → Target → Fix

Usage:
    pipeline = AppGenerationPipeline()
    result = pipeline.generate_app("A habit tracker with streaks")
"""
import logging
import re
import time
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from config import (
    DATA_DIR,
    MAX_FIX_ITERATIONS,
    MAX_RECOVERY_PASSES,
    PROJECTS_DIR,
    PROVISION_TIMEOUT_SECONDS,
)
from agents.core.analyzer import Analyzer
from agents.core.builder import Builder, Compiler
from agents.core.coding_agent import BASE_TOOLS, CLICodingAgent, CodingAgent, CodingAgentError, write_mcp_config
from agents.core.diagnostics import DiagnosticClassifier, DiagnosticParser
from agents.core.error_fixer import BuildFixLoop, FixLoopError
from agents.core.executor import Executor
from agents.core.llm import GeminiReasoningClient, ReasoningClient, ReasoningError
from agents.core.phases import ControllerOutcome, Phase, PhaseContext, PhaseController
from agents.core.planner import Planner
from agents.core.prompts import BUILD_SYSTEM_PROMPT, build_system_prompt, build_user_prompt
from agents.core.router import IntentRouter
from agents.core.validator import Validator, format_report, resolve_unit_path
from agents.schemas import (
    AnalysisResult,
    FixLoopResult,
    IntentDecision,
    Operation,
    PhaseResult,
    PipelineState,
    PlannerResult,
    to_model_refs,
)
from integrations import IntegrationManager, IntegrationStore, ProviderRegistry, build_registry
from integrations.contract import NonInteractiveSetupUI, PromptRequest, ProvisionRequest, ProvisionResult, SetupUI
from storage import HistoryStore, StoreError, UsageStore
from storage.usage import format_token_count

logger = logging.getLogger(__name__)

CompilerFactory = Callable[[Path, str, Callable[[str], None]], Compiler]


class PipelineError(Exception):
    """Raised when pipeline execution fails"""
    pass


@dataclass
class Stores:
    """Persistent handles shared by the pipeline and the API"""
    registry: ProviderRegistry
    integrations: IntegrationStore
    history: HistoryStore
    usage: UsageStore


def build_stores(data_dir: Path = DATA_DIR, registry: Optional[ProviderRegistry] = None) -> Stores:
    registry = registry or build_registry()
    return Stores(
        registry=registry,
        integrations=IntegrationStore(data_dir, registry=registry),
        history=HistoryStore(data_dir),
        usage=UsageStore(data_dir),
    )


def default_compiler_factory(project_dir: Path, app_name: str, log: Callable[[str], None]) -> Compiler:
    return Builder(project_dir, app_name, progress_callback=log)


def unit_key(project_dir: Path, app_name: str, planned_path: str) -> str:
    """Project-relative path of a planned unit, as compiler diagnostics report it"""
    resolved = resolve_unit_path(project_dir, app_name, planned_path)
    return resolved.relative_to(project_dir).as_posix()


# ----------------------------------------------------------------------
# Phases
# ----------------------------------------------------------------------


def _operation(ctx: PhaseContext) -> Operation:
    return ctx.payload("route").operation


class RoutePhase(Phase):
    name = "route"
    success_state = PipelineState.ROUTED

    def __init__(self, router: IntentRouter):
        self.router = router

    def run(self, ctx: PhaseContext) -> PhaseResult:
        try:
            return PhaseResult.ok(self.router.route(ctx.prompt, ctx.hints))
        except ReasoningError as e:
            return PhaseResult.retry(f"routing answer violated the hint contract: {e}")


class TargetPhase(Phase):
    """
    Finds the existing project an edit or fix request is about and prepares
    an agent session for it.
    """
    name = "target"
    success_state = PipelineState.TARGETED
    max_retries = 0

    def __init__(self, pipeline: "AppGenerationPipeline"):
        self.pipeline = pipeline

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) in (Operation.EDIT, Operation.FIX)

    def run(self, ctx: PhaseContext) -> PhaseResult:
        p = self.pipeline
        project_dir = p.resolve_target(ctx.prompt, ctx.resources.get("target_app"))
        if project_dir is None:
            return PhaseResult.fatal(
                f"no existing project to {_operation(ctx).value}; name the app in the request "
                f"(projects in {p.projects_dir}: {', '.join(p.existing_projects()) or 'none'})"
            )
        app_name = project_dir.name
        p.log(f"Target: {app_name} at {project_dir}")
        executor, active = p.existing_executor(project_dir, app_name)
        ctx.resources.update(project_dir=project_dir, app_name=app_name, executor=executor)
        return PhaseResult.ok({
            "app_name": app_name,
            "project_dir": str(project_dir),
            "integrations": [ap.id for ap in active],
        })


class EditPhase(Phase):
    name = "edit"
    success_state = PipelineState.EDITED

    def __init__(self, pipeline: "AppGenerationPipeline"):
        self.pipeline = pipeline

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) == Operation.EDIT

    def run(self, ctx: PhaseContext) -> PhaseResult:
        executor: Executor = ctx.resources["executor"]
        try:
            response = executor.edit(ctx.prompt, ctx.hints)
        except CodingAgentError as e:
            return PhaseResult.retry(f"edit pass failed: {e}")
        return PhaseResult.ok({"summary": response.result[:500]})


class AnalyzePhase(Phase):
    name = "analyze"
    success_state = PipelineState.ANALYZED

    def __init__(self, analyzer: Analyzer):
        self.analyzer = analyzer

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) == Operation.BUILD

    def run(self, ctx: PhaseContext) -> PhaseResult:
        intent: IntentDecision = ctx.payload("route")
        try:
            return PhaseResult.ok(self.analyzer.analyze(ctx.prompt, intent, ctx.hints))
        except ReasoningError as e:
            return PhaseResult.retry(f"analysis failed: {e}")


class PlanPhase(Phase):
    name = "plan"
    success_state = PipelineState.PLANNED

    def __init__(self, planner: Planner):
        self.planner = planner

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) == Operation.BUILD

    def run(self, ctx: PhaseContext) -> PhaseResult:
        analysis: AnalysisResult = ctx.payload("analyze")
        intent: IntentDecision = ctx.payload("route")
        try:
            return PhaseResult.ok(self.planner.plan(analysis, intent, ctx.hints))
        except ReasoningError as e:
            return PhaseResult.retry(f"planning failed: {e}")


class BuildPhase(Phase):
    """
    Prepares the workspace and integrations, then runs the generation pass.
    """
    name = "build"
    success_state = PipelineState.BUILT

    def __init__(self, pipeline: "AppGenerationPipeline"):
        self.pipeline = pipeline

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) == Operation.BUILD

    def run(self, ctx: PhaseContext) -> PhaseResult:
        p = self.pipeline
        intent: IntentDecision = ctx.payload("route")
        analysis: AnalysisResult = ctx.payload("analyze")
        plan: PlannerResult = ctx.payload("plan")
        app_name = analysis.app_name

        project_dir = p.projects_dir / app_name
        project_dir.mkdir(parents=True, exist_ok=True)
        p.log(f"Workspace: {project_dir}")

        active = p.manager.resolve(app_name, plan.integrations, p.setup_ui)
        if active:
            p.log(f"Integrations: {', '.join(ap.id for ap in active)}")

        models = to_model_refs(plan.models)
        provisioned = ProvisionResult()
        if active and (plan.backend.needs_backend() or plan.monetization is not None):
            p.log("Provisioning backend resources...")
            provisioned = p.manager.provision(ProvisionRequest(
                app_name=app_name,
                bundle_id=f"com.appforge.{app_name.lower()}",
                models=models,
                auth_methods=plan.backend.auth_methods,
                needs_auth=plan.backend.auth,
                needs_db=plan.backend.db,
                needs_storage=plan.backend.storage,
                needs_realtime=plan.backend.realtime,
                monetization=plan.monetization,
                deadline=time.monotonic() + p.provision_timeout,
            ), active)
            for warning in provisioned.warnings:
                p.log(f"⚠ {warning}")
            if provisioned.tables_created:
                p.log(f"✓ Tables ready: {', '.join(provisioned.tables_created)}")

        contributions = p.manager.prompt_contributions(PromptRequest(
            app_name=app_name,
            models=models,
            auth_methods=plan.backend.auth_methods,
            store=p.manager.store,
            backend_provisioned=provisioned.backend_provisioned,
            monetization=plan.monetization,
        ), active)
        ctx.contributions[:] = contributions

        mcp_path = write_mcp_config(project_dir, p.manager.mcp_configs(active))
        allowed_tools = _dedupe(BASE_TOOLS + p.manager.agent_tools(active) + p.manager.mcp_tool_allowlist(active))

        executor = Executor(
            agent=p.agent,
            project_dir=project_dir,
            app_name=app_name,
            system_prompt=build_system_prompt(contributions),
            allowed_tools=allowed_tools,
            mcp_config_path=mcp_path,
            progress_callback=p.log,
        )
        try:
            executor.generate(build_user_prompt(ctx.prompt, intent, analysis, plan, contributions, ctx.hints))
        except CodingAgentError as e:
            return PhaseResult.retry(f"generation pass failed: {e}")

        ctx.resources.update(project_dir=project_dir, app_name=app_name, executor=executor)
        return PhaseResult.ok({
            "app_name": app_name,
            "project_dir": str(project_dir),
            "integrations": [ap.id for ap in active],
            "provision": provisioned.model_dump(),
            "allowed_tools": allowed_tools,
        })


class FixPhase(Phase):
    name = "fix"
    success_state = PipelineState.FIXED
    max_retries = 0

    def __init__(self, pipeline: "AppGenerationPipeline"):
        self.pipeline = pipeline

    def run(self, ctx: PhaseContext) -> PhaseResult:
        loop = self.pipeline.fix_loop(ctx.resources["project_dir"], ctx.resources["app_name"], ctx.resources["executor"])
        try:
            result = loop.run()
        except FixLoopError as e:
            return PhaseResult.fatal(str(e))
        self.pipeline.fix_iterations += result.iterations
        if not result.success:
            return PhaseResult.fatal(
                f"build still failing after {result.iterations} builds ({result.reason}), "
                f"{len(result.remaining)} diagnostics left",
                payload=result,
            )
        return PhaseResult.ok(result)


class RecoverPhase(Phase):
    """
    Verifies planned units and regenerates the ones that are missing or incomplete.
    """
    name = "recover"
    success_state = PipelineState.RECOVERED
    max_retries = 0

    def __init__(self, pipeline: "AppGenerationPipeline"):
        self.pipeline = pipeline

    def applies(self, ctx: PhaseContext) -> bool:
        return _operation(ctx) == Operation.BUILD

    def run(self, ctx: PhaseContext) -> PhaseResult:
        p = self.pipeline
        plan: PlannerResult = ctx.payload("plan")
        project_dir: Path = ctx.resources["project_dir"]
        app_name: str = ctx.resources["app_name"]
        executor: Executor = ctx.resources["executor"]

        validator = Validator(project_dir, app_name)
        report = validator.verify(plan)
        if report.complete:
            p.log(f"✓ All {report.total_planned} planned files verified")
            return PhaseResult.ok(report)

        best = report.valid_count
        for recovery_pass in range(1, p.max_recovery_passes + 1):
            unresolved = {s.planned_path: s.reason for s in report.missing + report.invalid}
            p.log(f"Recovery pass {recovery_pass}: {len(unresolved)} unresolved file(s)\n{format_report(report)}")
            try:
                executor.complete(unresolved)
            except CodingAgentError as e:
                return PhaseResult.fatal(f"completion pass failed: {e}", payload=report)

            scope = {unit_key(project_dir, app_name, path) for path in unresolved}
            try:
                loop_result = p.fix_loop(project_dir, app_name, executor).run(scope=scope)
            except FixLoopError as e:
                return PhaseResult.fatal(str(e), payload=report)
            p.fix_iterations += loop_result.iterations

            report = validator.verify(plan)
            if report.complete:
                if loop_result.success:
                    p.log(f"✓ Recovered after {recovery_pass} pass(es)")
                    return PhaseResult.ok(report)
                return PhaseResult.fatal(f"files recovered but build still failing ({loop_result.reason})", payload=report)
            if report.valid_count <= best:
                return PhaseResult.fatal(
                    f"recovery stalled: {report.valid_count}/{report.total_planned} files valid, no improvement",
                    payload=report,
                )
            best = report.valid_count

        return PhaseResult.fatal(
            f"{len(report.unresolved_paths())} file(s) still unresolved after {p.max_recovery_passes} passes",
            payload=report,
        )


def _dedupe(items: List[str]) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------


class AppGenerationPipeline:
    """
    Complete app generation pipeline

    Collaborators can be injected; defaults talk to Gemini, the coding
    agent CLI and the configured build command.
    """

    def __init__(
        self,
        reasoning: Optional[ReasoningClient] = None,
        agent: Optional[CodingAgent] = None,
        compiler_factory: Optional[CompilerFactory] = None,
        stores: Optional[Stores] = None,
        manager: Optional[IntegrationManager] = None,
        setup_ui: Optional[SetupUI] = None,
        projects_dir: Optional[Path] = None,
        max_fix_iterations: int = MAX_FIX_ITERATIONS,
        max_recovery_passes: int = MAX_RECOVERY_PASSES,
        provision_timeout: float = PROVISION_TIMEOUT_SECONDS,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize pipeline

        Args:
            reasoning: Reasoning model client (defaults to Gemini)
            agent: Coding agent (defaults to the CLI agent)
            compiler_factory: (project_dir, app_name, log) -> Compiler
            stores: Registry, integration store and history store
            manager: Integration manager (defaults to one over stores)
            setup_ui: Interactive setup callbacks (defaults to non-interactive)
            projects_dir: Where generated projects live
            progress_callback: Optional callback for progress updates (msg: str) -> None
        """
        self.reasoning = reasoning or GeminiReasoningClient()
        self.agent = agent or CLICodingAgent()
        self.compiler_factory = compiler_factory or default_compiler_factory
        self.stores = stores or build_stores()
        self.progress_callback = progress_callback
        self.manager = manager or IntegrationManager(self.stores.registry, self.stores.integrations, warn=self.log)
        self.setup_ui = setup_ui or NonInteractiveSetupUI(on_warning=self.log)
        self.projects_dir = Path(projects_dir or PROJECTS_DIR)
        self.max_fix_iterations = max_fix_iterations
        self.max_recovery_passes = max_recovery_passes
        self.provision_timeout = provision_timeout

        self.execution_log: List[str] = []
        self.fix_iterations = 0

    def log(self, msg: str) -> None:
        self.execution_log.append(msg)
        if self.progress_callback:
            self.progress_callback(msg)
        logger.info(f"[Pipeline] {msg}")

    def fix_loop(self, project_dir: Path, app_name: str, executor: Executor) -> BuildFixLoop:
        return BuildFixLoop(
            compiler=self.compiler_factory(project_dir, app_name, self.log),
            fixer=executor,
            parser=DiagnosticParser(project_dir),
            classifier=DiagnosticClassifier(),
            max_iterations=self.max_fix_iterations,
            progress_callback=self.log,
        )

    def phases(self) -> List[Phase]:
        available = {p.id: p.descriptor for p in self.manager.registry.providers()}
        return [
            RoutePhase(IntentRouter(self.reasoning)),
            TargetPhase(self),
            EditPhase(self),
            AnalyzePhase(Analyzer(self.reasoning)),
            PlanPhase(Planner(self.reasoning, available_integrations=available)),
            BuildPhase(self),
            FixPhase(self),
            RecoverPhase(self),
        ]

    def existing_projects(self) -> List[str]:
        if not self.projects_dir.is_dir():
            return []
        return sorted(p.name for p in self.projects_dir.iterdir() if p.is_dir() and not p.name.startswith("."))

    def resolve_target(self, prompt: str, app_name: Optional[str] = None) -> Optional[Path]:
        """
        Existing project an edit or fix request refers to.

        An explicit app name wins. Otherwise the longest project name that
        appears as a word in the prompt is used, and a lone project is
        assumed when the prompt names none.

        Returns:
            The project directory, or None when no project matches
        """
        projects = self.existing_projects()
        if app_name:
            match = next((name for name in projects if name.lower() == app_name.lower()), None)
            return self.projects_dir / match if match else None

        text = prompt.lower()
        mentioned = [name for name in projects if re.search(rf"\b{re.escape(name.lower())}\b", text)]
        if mentioned:
            return self.projects_dir / max(mentioned, key=len)
        if len(projects) == 1:
            return self.projects_dir / projects[0]
        return None

    def existing_executor(self, project_dir: Path, app_name: str):
        """
        Agent session for a project generated earlier, with the tools of
        the integrations already stored for the app.

        Returns:
            (Executor, active providers)
        """
        active = self.manager.resolve_existing(app_name)
        executor = Executor(
            agent=self.agent,
            project_dir=project_dir,
            app_name=app_name,
            system_prompt=BUILD_SYSTEM_PROMPT,
            allowed_tools=_dedupe(BASE_TOOLS + self.manager.agent_tools(active) + self.manager.mcp_tool_allowlist(active)),
            mcp_config_path=write_mcp_config(project_dir, self.manager.mcp_configs(active)),
            progress_callback=self.log,
        )
        return executor, active

    def generate_app(self, user_prompt: str, app_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Handle a user request: build a new app, or edit or fix an existing one

        This is the main entry point for app generation.

        Args:
            user_prompt: User's request
            app_name: Existing app an edit or fix applies to (found from the
                prompt when omitted)

        Returns:
            Dictionary with status, operation, app name, project directory and logs
        """
        self.execution_log = []
        self.fix_iterations = 0
        ctx = PhaseContext(user_prompt)
        if app_name:
            ctx.resources["target_app"] = app_name

        try:
            self.stores.history.append("user", user_prompt)
            self.log("=== Starting App Generation Pipeline ===")
            self.log(f"Prompt: {user_prompt}")

            outcome = PhaseController(self.phases(), progress_callback=self.log).run(ctx)
            result = self._result(ctx, outcome)
        except Exception as e:
            error_msg = f"Pipeline failed: {str(e)}"
            self.log(f"✗ {error_msg}")
            result = {
                "status": "error",
                "error": error_msg,
                "failed_phase": None,
                "traceback": traceback.format_exc(),
                "fix_iterations": self.fix_iterations,
                "execution_log": self.execution_log,
            }

        result.setdefault("operation", Operation.BUILD.value)
        self._record_usage(ctx.resources.get("executor"))
        self._append_history(result)
        return result

    def _result(self, ctx: PhaseContext, outcome: ControllerOutcome) -> Dict[str, Any]:
        operation = ctx.payload("route").operation if ctx.has_payload("route") else Operation.BUILD
        workspace: Dict[str, Any] = {}
        for name in ("build", "target"):
            if ctx.has_payload(name):
                workspace = ctx.payload(name)
        result: Dict[str, Any] = {
            "status": "success" if outcome.succeeded else "error",
            "operation": operation.value,
            "state": outcome.state.value,
            "app_name": workspace.get("app_name"),
            "project_dir": workspace.get("project_dir"),
            "integrations": workspace.get("integrations", []),
            "failed_phase": outcome.failed_phase,
            "error": outcome.reason or None,
            "fix_iterations": self.fix_iterations,
            "phases": [r.model_dump(mode="json") for r in outcome.records],
            "execution_log": self.execution_log,
        }
        if ctx.has_payload("recover"):
            result["completion"] = ctx.payload("recover").summary()
        executor = ctx.resources.get("executor")
        if executor is not None:
            result["total_cost_usd"] = round(executor.total_cost_usd, 4)

        if outcome.succeeded:
            self.log("=== App Generation Complete ===")
        else:
            self.log(f"✗ Pipeline failed in {outcome.failed_phase}: {outcome.reason}")
        return result

    def _append_history(self, result: Dict[str, Any]) -> None:
        done = {"build": "Built", "edit": "Edited", "fix": "Fixed"}
        operation = result.get("operation", Operation.BUILD.value)
        if result["status"] == "success":
            summary = f"{done[operation]} {result.get('app_name')} at {result.get('project_dir')}"
        else:
            summary = (f"{operation.capitalize()} failed ({result.get('failed_phase') or 'pipeline'}): "
                       f"{result.get('error')}")
        try:
            self.stores.history.append("assistant", summary)
        except StoreError as e:
            self.log(f"⚠ Could not record history: {e}")

    def _record_usage(self, executor: Optional[Executor]) -> None:
        if executor is None or not executor.requests:
            return
        try:
            session = self.stores.usage.record(
                executor.total_cost_usd,
                input_tokens=executor.input_tokens,
                output_tokens=executor.output_tokens,
                requests=executor.requests,
            )
        except StoreError as e:
            self.log(f"⚠ Could not record usage: {e}")
            return
        self.log(
            f"Usage: ${executor.total_cost_usd:.4f} this run, ${session.total_cost_usd:.4f} this session "
            f"({format_token_count(session.input_tokens)} in / {format_token_count(session.output_tokens)} out)"
        )

    def fix_existing(self, project_dir: Path, app_name: str) -> Dict[str, Any]:
        """
        Run only the build-fix loop over an existing project.

        Args:
            project_dir: Project root
            app_name: App name (scheme) used by the build command

        Returns:
            Dictionary with status, fix iterations and logs
        """
        self.execution_log = []
        self.fix_iterations = 0
        project_dir = Path(project_dir)
        if not project_dir.is_dir():
            raise PipelineError(f"Project directory not found: {project_dir}")

        self.log(f"=== Fixing {app_name} ===")
        executor, _ = self.existing_executor(project_dir, app_name)
        try:
            loop_result: Optional[FixLoopResult] = self.fix_loop(project_dir, app_name, executor).run()
            error = None if loop_result.success else loop_result.reason
        except (FixLoopError, CodingAgentError) as e:
            loop_result = None
            error = str(e)
        if loop_result is not None:
            self.fix_iterations = loop_result.iterations

        status = "success" if loop_result is not None and loop_result.success else "error"
        self.log("✓ Build is clean" if status == "success" else f"✗ Fix failed: {error}")
        self._record_usage(executor)
        return {
            "status": status,
            "operation": Operation.FIX.value,
            "app_name": app_name,
            "project_dir": str(project_dir),
            "error": error,
            "fix_iterations": self.fix_iterations,
            "remaining": [d.model_dump(mode="json") for d in loop_result.remaining] if loop_result else [],
            "execution_log": self.execution_log,
        }


# Convenience function for simple usage
def generate_app_from_prompt(
    user_prompt: str,
    progress_callback: Optional[Callable[[str], None]] = None
) -> Dict[str, Any]:
    """
    Generate an app from a user prompt (convenience function)
    """
    pipeline = AppGenerationPipeline(progress_callback=progress_callback)
    return pipeline.generate_app(user_prompt)


__all__ = [
    "AppGenerationPipeline",
    "PipelineError",
    "Stores",
    "build_stores",
    "generate_app_from_prompt",
    "unit_key",
]
