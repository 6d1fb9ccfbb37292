"""
Planner - AnalysisResult → PlannerResult

Responsibilities:
- Ask the reasoning model for a file-level build plan
- Offer the registered integrations so the plan can request them
- Normalize the plan (deduplicate files, drop unknown integrations,
  order files by dependency)
"""
import logging
from typing import Dict, List, Optional

from agents.core.llm import ReasoningClient
from agents.schemas import AnalysisResult, FilePlan, IntentDecision, PlannerResult
from integrations.types import ProviderDescriptor

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = """You are a senior Swift/SwiftUI architect.
Turn the analysis into a build plan:
- files: every Swift source file to create. path is relative to the app
  source root (e.g. Models/Note.swift), type_name is the main type it declares,
  depends_on lists other planned paths it uses.
- models: data models with typed properties (Swift types, ? for optional).
  When a backend integration is used, put a first property named id of type UUID.
- permissions: Info.plist usage keys the app needs.
- integrations: provider ids from the list below, only when the app needs them.
- backend: which backend capabilities the app needs (auth, db, storage, realtime)
  and auth_methods (email, apple, google, anonymous, phone).
- monetization: only if the app sells subscriptions or purchases.
- build_order: file paths in the order they should be written."""


class Planner:
    """
    Planner - produces the list of source units the coding agent must write.
    """

    def __init__(self, reasoning: ReasoningClient, available_integrations: Optional[Dict[str, ProviderDescriptor]] = None):
        """
        Args:
            reasoning: Reasoning model client
            available_integrations: Registered provider ids and their descriptors
        """
        self.reasoning = reasoning
        self.available_integrations = available_integrations or {}

    def plan(self, analysis: AnalysisResult, intent: IntentDecision, hints: Optional[List[str]] = None) -> PlannerResult:
        """
        Create a build plan

        Args:
            analysis: Output of the analyze phase
            intent: Routing decision
            hints: Notes from earlier failed attempts

        Returns:
            Normalized PlannerResult
        """
        lines = [
            f"App: {analysis.app_name}",
            f"Platform: {intent.platform_hint.value}",
            f"Description: {analysis.description}",
            f"Core flow: {analysis.core_flow}",
            "Features:",
        ]
        lines.extend(f"- {f.name}: {f.description}" for f in analysis.features)
        if self.available_integrations:
            lines.append("")
            lines.append("Available integrations (id: description):")
            for provider_id, descriptor in self.available_integrations.items():
                lines.append(f"- {provider_id}: {descriptor.description}")
        if hints:
            lines.append("")
            lines.append("Previous attempts failed for these reasons, avoid them:")
            lines.extend(f"- {h}" for h in hints)

        raw = self.reasoning.generate(PLANNER_SYSTEM_PROMPT, "\n".join(lines), PlannerResult)
        plan = self.normalize(raw)
        logger.info(
            f"[Planner] {analysis.app_name}: {len(plan.files)} files, {len(plan.models)} models, "
            f"integrations={plan.integrations}"
        )
        return plan

    def normalize(self, plan: PlannerResult) -> PlannerResult:
        files: Dict[str, FilePlan] = {}
        for file_plan in plan.files:
            path = file_plan.path.strip().lstrip("/")
            if path and path not in files:
                files[path] = file_plan.model_copy(update={"path": path})

        integrations = []
        for provider_id in plan.integrations:
            provider_id = provider_id.strip().lower()
            if provider_id not in integrations:
                integrations.append(provider_id)
        if self.available_integrations:
            unknown = [p for p in integrations if p not in self.available_integrations]
            if unknown:
                logger.warning(f"[Planner] Dropping unknown integrations: {unknown}")
            integrations = [p for p in integrations if p in self.available_integrations]

        ordered = order_by_dependencies(list(files.values()), plan.build_order)
        return plan.model_copy(update={
            "files": ordered,
            "integrations": integrations,
            "build_order": [f.path for f in ordered],
        })


def order_by_dependencies(files: List[FilePlan], preferred: List[str]) -> List[FilePlan]:
    """
    Topologically order files so dependencies come first.

    Ties keep the preferred order, then plan order. Cycles are broken by
    emitting the remaining files in that same order.
    """
    by_path = {f.path: f for f in files}
    rank = {path: i for i, path in enumerate(preferred)}
    base = sorted(by_path, key=lambda p: (rank.get(p, len(rank)), list(by_path).index(p)))

    emitted: List[str] = []
    visiting = set()

    def visit(path: str) -> None:
        if path in emitted or path in visiting:
            return
        visiting.add(path)
        for dep in by_path[path].depends_on:
            if dep in by_path:
                visit(dep)
        visiting.discard(path)
        emitted.append(path)

    for path in base:
        visit(path)
    return [by_path[p] for p in emitted]


__all__ = ["Planner", "order_by_dependencies", "PLANNER_SYSTEM_PROMPT"]
