"""
Tests for Validator

Planned units are checked on disk after generation.
"""
import shutil
import tempfile
from pathlib import Path

import pytest

from agents.core.validator import Validator, format_report, is_placeholder_only, resolve_unit_path
from agents.schemas import FilePlan, PlannerResult


class TestValidator:
    """Test suite for Validator"""

    @pytest.fixture
    def temp_dir(self):
        temp_dir = Path(tempfile.mkdtemp())
        yield temp_dir
        shutil.rmtree(temp_dir)

    def write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def test_resolve_unit_path(self, temp_dir):
        """App-relative paths live under the app folder, shared roots at the project root"""
        assert resolve_unit_path(temp_dir, "Notes", "Views/List.swift") == temp_dir / "Notes" / "Views" / "List.swift"
        assert resolve_unit_path(temp_dir, "Notes", "Shared/Model.swift") == temp_dir / "Shared" / "Model.swift"
        assert resolve_unit_path(temp_dir, "Notes", "Targets/Widget/W.swift") == temp_dir / "Targets" / "Widget" / "W.swift"

    def test_verify_reports_each_problem(self, temp_dir):
        self.write(temp_dir / "Notes" / "Good.swift", "struct Good: View {}\n")
        self.write(temp_dir / "Notes" / "Empty.swift", "   \n")
        self.write(temp_dir / "Notes" / "Stub.swift", "// placeholder\n")
        self.write(temp_dir / "Notes" / "Wrong.swift", "struct Other {}\n")
        (temp_dir / "Notes" / "Folder.swift").mkdir(parents=True)
        plan = PlannerResult(files=[
            FilePlan(path="Good.swift", type_name="Good"),
            FilePlan(path="Empty.swift"),
            FilePlan(path="Stub.swift"),
            FilePlan(path="Wrong.swift", type_name="Expected"),
            FilePlan(path="Folder.swift"),
            FilePlan(path="Missing.swift"),
        ])

        report = Validator(temp_dir, "Notes").verify(plan)

        assert report.total_planned == 6
        assert report.valid_count == 1
        assert report.complete is False
        assert [s.planned_path for s in report.missing] == ["Missing.swift"]
        reasons = {s.planned_path: s.reason for s in report.invalid}
        assert reasons["Empty.swift"] == "file is empty"
        assert reasons["Stub.swift"] == "file contains placeholder-only content"
        assert "Expected" in reasons["Wrong.swift"]
        assert "directory" in reasons["Folder.swift"]
        assert [s.planned_path for s in report.invalid] == sorted(reasons)

    def test_verify_complete(self, temp_dir):
        self.write(temp_dir / "Notes" / "App.swift", "@main struct NotesApp: App {}\n")
        plan = PlannerResult(files=[FilePlan(path="App.swift", type_name="NotesApp")])

        report = Validator(temp_dir, "Notes").verify(plan)

        assert report.complete is True
        assert report.unresolved_paths() == []

    def test_verify_only_subset(self, temp_dir):
        plan = PlannerResult(files=[FilePlan(path="A.swift"), FilePlan(path="B.swift")])
        report = Validator(temp_dir, "Notes").verify(plan, only=["B.swift"])
        assert report.total_planned == 1
        assert report.unresolved_paths() == ["B.swift"]

    def test_placeholder_with_declaration_is_real(self):
        assert is_placeholder_only("// TODO placeholder text") is True
        assert is_placeholder_only("struct Row { let placeholder = \"\" }") is False

    def test_format_report_limit(self, temp_dir):
        plan = PlannerResult(files=[FilePlan(path=f"F{i}.swift") for i in range(5)])
        report = Validator(temp_dir, "Notes").verify(plan)

        text = format_report(report, limit=2)

        assert text.splitlines() == [
            "- F0.swift: file does not exist",
            "- F1.swift: file does not exist",
            "- ... and 3 more",
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
