"""
Prompt composition for the coding agent

Builds the generation, edit, completion and repair prompts. Provider prompt
contributions are folded in here and nowhere else.
"""
from typing import Dict, List, Optional

from agents.schemas import AnalysisResult, Diagnostic, DiagnosticTier, IntentDecision, PlannerResult
from integrations.contract import PromptContribution

BUILD_SYSTEM_PROMPT = """You are an expert Swift/SwiftUI engineer writing a complete, compiling app.
Rules:
- Write every planned file at its planned path under the app source directory.
- Each file declares its planned type. No placeholders, no TODO stubs.
- Use only Apple frameworks and the SDK packages named in the integration sections.
- Keep the app building: after writing files, run the build and fix errors you introduced."""

TIER_GUIDANCE: Dict[DiagnosticTier, str] = {
    DiagnosticTier.STRUCTURAL: "These units are syntactically broken. Rewrite each one completely and cleanly.",
    DiagnosticTier.CONFORMANCE: "Add the missing protocol conformances or requirements. Do not change unrelated code.",
    DiagnosticTier.MISSING_ARGUMENTS: "Fix call sites so arguments match the declared signatures.",
    DiagnosticTier.SCOPE: "Declare, import, or correctly reference the missing symbols.",
    DiagnosticTier.TYPE_MISMATCH: "Fix the type mismatches with the smallest correct change.",
}


def build_system_prompt(contributions: List[PromptContribution]) -> str:
    parts = [BUILD_SYSTEM_PROMPT]
    parts.extend(c.system_block for c in contributions if c.system_block)
    return "\n".join(parts)


def build_user_prompt(
    prompt: str,
    intent: IntentDecision,
    analysis: AnalysisResult,
    plan: PlannerResult,
    contributions: List[PromptContribution],
    hints: Optional[List[str]] = None,
) -> str:
    lines = []
    for c in contributions:
        if c.user_block:
            lines.append(c.user_block.strip("\n"))
            lines.append("")

    lines.append(f"Build the app \"{analysis.app_name}\" for {intent.platform_hint.value}"
                 + (f" ({intent.device_family_hint.value})" if intent.device_family_hint else "") + ".")
    lines.append("")
    lines.append(f"Original request: {prompt}")
    lines.append("")
    lines.append(f"Description: {analysis.description}")
    if analysis.core_flow:
        lines.append(f"Core flow: {analysis.core_flow}")
    lines.append("")
    lines.append("Features:")
    lines.extend(f"- {f.name}: {f.description}" for f in analysis.features)
    lines.append("")
    lines.append("Files (write them in this order):")
    for f in plan.files:
        detail = f" - {f.purpose}" if f.purpose else ""
        type_name = f" [{f.type_name}]" if f.type_name else ""
        lines.append(f"- {f.path}{type_name}{detail}")
    if plan.models:
        lines.append("")
        lines.append("Data models:")
        for m in plan.models:
            props = ", ".join(f"{p.name}: {p.type}" for p in m.properties)
            lines.append(f"- {m.name}({props})")
    if plan.permissions:
        lines.append("")
        lines.append("Permissions:")
        lines.extend(f"- {p.key}: {p.description}" for p in plan.permissions)
    if hints:
        lines.append("")
        lines.append("Notes from previous attempts:")
        lines.extend(f"- {h}" for h in hints)
    return "\n".join(lines)


def edit_prompt(app_name: str, request: str, hints: Optional[List[str]] = None) -> str:
    """Change an existing app in place"""
    lines = [
        f"Edit the existing app \"{app_name}\" in this directory based on the following request:",
        "",
        request,
        "",
        "Read the relevant files first. Change only what the request needs and keep existing files in place.",
        "Keep the app building: after making changes, run the build and fix errors you introduced.",
    ]
    if hints:
        lines.append("")
        lines.append("Notes from previous attempts:")
        lines.extend(f"- {h}" for h in hints)
    return "\n".join(lines)


def completion_prompt(app_name: str, unresolved: Dict[str, str]) -> str:
    """Ask the agent to (re)write only the listed units"""
    lines = [
        f"The app \"{app_name}\" is missing or has incomplete source files.",
        "Write ONLY these files, completely, without placeholders. Do not touch other files.",
        "",
    ]
    lines.extend(f"- {path}: {reason}" for path, reason in sorted(unresolved.items()))
    return "\n".join(lines)


def repair_prompt(tier: DiagnosticTier, diagnostics: Dict[Optional[str], List[Diagnostic]],
                  regenerate: bool = False, limit_per_unit: int = 15) -> str:
    lines = [TIER_GUIDANCE[tier]]
    if regenerate:
        lines.append("Rewrite each listed file in full. Preserve its public types and their members.")
    else:
        lines.append("Only edit the listed files.")
    lines.append("")
    for unit in sorted(diagnostics, key=lambda u: u or ""):
        entries = diagnostics[unit]
        lines.append(f"{unit or 'General (no file reported)'}:")
        for d in entries[:limit_per_unit]:
            where = f"line {d.line}: " if d.line else ""
            lines.append(f"  - {where}{d.message}")
        if len(entries) > limit_per_unit:
            lines.append(f"  - ... {len(entries) - limit_per_unit} more")
    return "\n".join(lines)


__all__ = [
    "BUILD_SYSTEM_PROMPT",
    "build_system_prompt",
    "build_user_prompt",
    "edit_prompt",
    "completion_prompt",
    "repair_prompt",
]
