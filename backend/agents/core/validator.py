"""
Validator - planned unit verification

Responsibilities:
- Resolve each planned file to its location in the project
- Flag units that are missing, empty, placeholder-only, or lack their
  expected type declaration
- Summarize coverage in a CompletionReport

A clean compile does not mean the app is complete: the coding agent can
skip files or leave stubs. The recover phase uses this report to decide
which units to regenerate.
"""
import logging
import re
from pathlib import Path, PurePosixPath
from typing import List

from agents.schemas import CompletionReport, FilePlan, PlannerResult, UnitStatus

logger = logging.getLogger(__name__)

SHARED_ROOTS = ("Targets", "Shared")

_TYPE_DECLARATION = re.compile(r"\b(struct|class|enum|protocol|extension|actor)\s+\w|@main\b")


def resolve_unit_path(project_dir: Path, app_name: str, planned_path: str) -> Path:
    """Planned paths are relative to <project>/<AppName>/ unless they start with a shared root."""
    clean = PurePosixPath(planned_path.replace("\\", "/"))
    if clean.parts and clean.parts[0] in SHARED_ROOTS:
        return Path(project_dir).joinpath(*clean.parts)
    return Path(project_dir).joinpath(app_name, *clean.parts)


def is_placeholder_only(content: str) -> bool:
    trimmed = content.replace("\r\n", "\n").strip()
    if "placeholder" in trimmed.lower() and not _TYPE_DECLARATION.search(trimmed):
        return True
    return False


class Validator:
    """
    Validator - checks generated units against the plan
    """

    def __init__(self, project_dir: Path, app_name: str):
        self.project_dir = Path(project_dir)
        self.app_name = app_name

    def check_unit(self, planned: FilePlan) -> UnitStatus:
        resolved = resolve_unit_path(self.project_dir, self.app_name, planned.path)
        status = UnitStatus(planned_path=planned.path, resolved_path=str(resolved), expected_type=planned.type_name)

        if not resolved.exists():
            status.reason = "file does not exist"
            return status
        status.exists = True
        if resolved.is_dir():
            status.reason = "path resolves to a directory, expected a file"
            return status
        try:
            content = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            status.reason = f"failed to read file: {e}"
            return status

        if not content.strip():
            status.reason = "file is empty"
        elif is_placeholder_only(content):
            status.reason = "file contains placeholder-only content"
        elif planned.type_name and planned.type_name not in content:
            status.reason = f"missing expected type {planned.type_name!r}"
        else:
            status.valid = True
        return status

    def verify(self, plan: PlannerResult, only: List[str] = None) -> CompletionReport:
        """
        Verify planned units

        Args:
            plan: Build plan
            only: Restrict verification to these planned paths

        Returns:
            CompletionReport (missing and invalid sorted by path)
        """
        files = [f for f in plan.files if only is None or f.path in only]
        report = CompletionReport(total_planned=len(files))
        for planned in files:
            status = self.check_unit(planned)
            if status.valid:
                report.valid_count += 1
            elif not status.exists:
                report.missing.append(status)
            else:
                report.invalid.append(status)

        report.missing.sort(key=lambda s: s.planned_path)
        report.invalid.sort(key=lambda s: s.planned_path)
        report.complete = not report.missing and not report.invalid
        logger.info(
            f"[Validator] {report.valid_count}/{report.total_planned} valid, "
            f"{len(report.missing)} missing, {len(report.invalid)} invalid"
        )
        return report


def format_report(report: CompletionReport, limit: int = 20) -> str:
    """Short human-readable list of unresolved units"""
    lines = []
    for status in (report.missing + report.invalid)[:limit]:
        lines.append(f"- {status.planned_path}: {status.reason}")
    extra = len(report.missing) + len(report.invalid) - limit
    if extra > 0:
        lines.append(f"- ... and {extra} more")
    return "\n".join(lines)


__all__ = ["Validator", "resolve_unit_path", "is_placeholder_only", "format_report"]
