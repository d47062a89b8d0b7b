from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from todomd import files, frontmatter
from todomd.errors import PathTraversalError
from todomd.models import Issue


class TestWriteMany:
    def test_writes_documents_under_root(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        issues = [Issue(id="todo-1", title="First"), Issue(id="todo-2", title="Second")]

        report = files.write_many(issues, root)

        assert [path.name for path in report.written] == [
            "todo-1-first.md",
            "todo-2-second.md",
        ]
        assert report.failed == ()
        loaded = files.load_many(root)
        assert [issue.id for issue in loaded] == ["todo-1", "todo-2"]
        assert all(issue.source == "file" for issue in loaded)

    def test_traversal_id_stays_inside_root(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        issue = Issue(id="../../../etc/passwd", title="x")

        report = files.write_many([issue], root)

        assert len(report.written) == 1
        written = report.written[0]
        assert written.parent == root.resolve()
        assert written.name.startswith("etc-passwd")
        assert frontmatter.parse(written.read_text()).id == "../../../etc/passwd"

    def test_bad_closed_subdir_aborts_before_creating_anything(
        self, tmp_path: Path
    ) -> None:
        root = tmp_path / "project" / ".todo"
        options = files.WriteOptions(separate_closed=True, closed_subdir="../../../etc")
        issues = [Issue(id="a-1"), Issue(id="a-2", status="closed")]

        with pytest.raises(PathTraversalError):
            files.write_many(issues, root, options)

        assert not root.exists()

    def test_closed_issues_go_to_subdir(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        options = files.WriteOptions(separate_closed=True, pattern="[id].md")
        issues = [Issue(id="a-1"), Issue(id="a-2", status="closed")]

        report = files.write_many(issues, root, options)

        assert report.written == (
            root.resolve() / "a-1.md",
            root.resolve() / "closed" / "a-2.md",
        )

    def test_io_failures_are_recorded_per_issue(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        original = Path.write_text

        def flaky_write(self: Path, data: str, *args: object, **kwargs: object) -> int:
            if self.name.startswith("a-1"):
                raise OSError("disk full")
            return original(self, data, *args, **kwargs)

        with patch.object(Path, "write_text", flaky_write):
            report = files.write_many([Issue(id="a-1"), Issue(id="a-2")], root)

        assert [failure.issue_id for failure in report.failed] == ["a-1"]
        assert "disk full" in report.failed[0].detail
        assert [path.name for path in report.written] == ["a-2-untitled.md"]

    def test_moved_issue_removes_previous_file(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        first = files.write_many([Issue(id="a-1", title="Old")], root)
        previous = first.written[0]
        options = files.WriteOptions(previous_paths={"a-1": previous})

        report = files.write_many([Issue(id="a-1", title="New")], root, options)

        assert report.removed == (previous,)
        assert not previous.exists()
        assert report.written[0].name == "a-1-new.md"

    def test_existing_names_avoid_collisions(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        files.write_many([Issue(id="a-1", title="Same")], root)
        options = files.WriteOptions(existing_names=files.existing_names(root))

        report = files.write_many([Issue(id="a-1", title="Same")], root, options)

        assert report.written[0].name == "a-1-same-1.md"


class TestPlanPaths:
    def test_is_pure(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        planned = files.plan_paths([Issue(id="a-1", title="T")], root)
        assert [item.relative for item in planned] == ["a-1-t.md"]
        assert not root.exists()

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(issue_id=st.text(min_size=1, max_size=30), title=st.text(max_size=60))
    def test_planned_paths_never_escape_root(
        self, tmp_path: Path, issue_id: str, title: str
    ) -> None:
        if not issue_id.strip():
            return
        root = tmp_path / ".todo"
        issue = Issue(id=issue_id, title=title or "x")
        for pattern in ("[id]-[title].md", "[type]/[id].md", "[Title]/[id].md"):
            options = files.WriteOptions(pattern=pattern)
            for item in files.plan_paths([issue], root, options):
                assert item.path.is_relative_to(root.resolve())
                assert item.path != root.resolve()


class TestLoad:
    def test_invalid_documents_are_skipped(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        (root / "nested").mkdir(parents=True)
        (root / "good.md").write_text("---\nid: a-1\n---\nBody\n")
        (root / "nested" / "also-good.md").write_text("---\nid: a-2\n---\n")
        (root / "no-id.md").write_text("---\ntitle: x\n---\n")
        (root / "unclosed.md").write_text("---\nid: a-3\n")
        (root / "notes.txt").write_text("---\nid: a-4\n---\n")
        (root / "binary.md").write_bytes(b"\xff\xfe\x00")

        with patch("todomd.files.log.warning") as warning:
            loaded = files.load_many_with_paths(root)

        assert sorted(issue.id for _path, issue in loaded) == ["a-1", "a-2"]
        assert warning.call_count == 3

    def test_missing_root_is_empty(self, tmp_path: Path) -> None:
        assert files.load_many(tmp_path / "absent") == []
        assert files.existing_names(tmp_path / "absent") == set()

    def test_delete_issue_file_checks_root(self, tmp_path: Path) -> None:
        root = tmp_path / ".todo"
        root.mkdir()
        target = root / "a.md"
        target.write_text("x")
        outside = tmp_path / "outside.md"
        outside.write_text("x")

        files.delete_issue_file(root, target)
        assert not target.exists()
        with pytest.raises(PathTraversalError):
            files.delete_issue_file(root, outside)
        assert outside.exists()
