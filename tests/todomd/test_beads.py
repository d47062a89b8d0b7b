from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from todomd import beads
from todomd import exec as exec_util
from todomd.models import Issue


def _write_log(root: Path, *records: object) -> Path:
    store = root / ".beads"
    store.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    (store / "issues.jsonl").write_text("\n".join(lines) + "\n")
    return store


class FakeRunner:
    def __init__(
        self, results: list[exec_util.CommandResult | None] | None = None
    ) -> None:
        self.requests: list[exec_util.CommandRequest] = []
        self._results = list(results or [])

    def run(self, request: exec_util.CommandRequest) -> exec_util.CommandResult | None:
        self.requests.append(request)
        if self._results:
            return self._results.pop(0)
        return exec_util.CommandResult(request.argv, 0, "{}", "")


class TestLoadBeads:
    def test_missing_store_is_empty(self, tmp_path: Path) -> None:
        assert beads.load_beads(tmp_path) == []

    def test_maps_records_to_issues(self, tmp_path: Path) -> None:
        _write_log(
            tmp_path,
            {
                "id": "bd-a1",
                "title": "Parent",
                "status": "open",
                "priority": 1,
                "issue_type": "epic",
                "created_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-02T00:00:00Z",
                "labels": ["core"],
                "compaction_level": 0,
            },
            {
                "id": "bd-b2",
                "title": "Child",
                "status": "closed",
                "priority": 7,
                "issue_type": "bug",
                "closed_at": "2024-02-01T00:00:00Z",
                "dependencies": [
                    {"depends_on_id": "bd-a1", "type": "parent-child"},
                    {"depends_on_id": "bd-c3", "type": "blocks"},
                ],
            },
        )

        issues = {issue.id: issue for issue in beads.load_beads(tmp_path)}

        parent = issues["bd-a1"]
        assert parent.type == "epic"
        assert parent.labels == ["core"]
        assert parent.children == ["bd-b2"]
        assert parent.source == "beads"
        child = issues["bd-b2"]
        assert child.priority == 4
        assert child.parent == "bd-a1"
        assert child.depends_on == ["bd-c3"]
        assert child.closed_at == "2024-02-01T00:00:00Z"

    def test_blocks_are_derived_from_dependencies(self, tmp_path: Path) -> None:
        _write_log(
            tmp_path,
            {"id": "a-1", "title": "A"},
            {
                "id": "a-2",
                "title": "B",
                "dependencies": [{"depends_on_id": "a-1", "type": "blocks"}],
            },
        )
        issues = {issue.id: issue for issue in beads.load_beads(tmp_path)}
        assert issues["a-1"].blocks == ["a-2"]
        assert issues["a-2"].blocks is None

    def test_tombstones_and_malformed_lines_are_skipped(self, tmp_path: Path) -> None:
        _write_log(
            tmp_path,
            {"id": "a-1", "title": "Keep"},
            {"id": "a-2", "title": "Gone", "status": "tombstone"},
            "{not json",
            {"title": "no id"},
            {"id": "   ", "title": "blank id"},
        )
        with patch("todomd.beads.log.warning") as warning:
            issues = beads.load_beads(tmp_path)
        assert [issue.id for issue in issues] == ["a-1"]
        assert warning.call_count == 3

    def test_store_dir_override(self, tmp_path: Path) -> None:
        store = _write_log(tmp_path / "elsewhere", {"id": "a-1"})
        assert [i.id for i in beads.load_beads(tmp_path, store_dir=store)] == ["a-1"]


class TestBdCliBackend:
    def test_create_builds_command_and_sets_beads_dir(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        backend = beads.BdCliBackend(store_dir=tmp_path / ".beads", runner=runner)
        issue = Issue(
            id="todo-1",
            title="Fix",
            type="bug",
            priority=1,
            description="Body",
            assignee="sam",
            labels=["a", "b"],
            depends_on=["todo-0"],
            parent="todo-epic",
        )

        result = backend.create(issue)

        assert result.ok
        request = runner.requests[0]
        assert request.argv == (
            "bd",
            "create",
            "Fix",
            "--id",
            "todo-1",
            "--type",
            "bug",
            "--priority",
            "1",
            "--description",
            "Body",
            "--assignee",
            "sam",
            "--labels",
            "a,b",
            "--deps",
            "todo-0",
            "--parent",
            "todo-epic",
            "--json",
        )
        assert request.env is not None
        assert request.env["BEADS_DIR"] == str(tmp_path / ".beads")
        assert request.cwd == tmp_path

    def test_create_closed_issue_closes_it(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        backend = beads.BdCliBackend(store_dir=tmp_path / ".beads", runner=runner)
        backend.create(Issue(id="todo-1", status="closed"))
        assert [r.argv[1] for r in runner.requests] == ["create", "close"]

    def test_update_maps_patch_fields(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        backend = beads.BdCliBackend(store_dir=tmp_path, runner=runner)
        backend.update(
            "todo-1", {"title": "New", "labels": ["x"], "assignee": None, "blocks": []}
        )
        assert runner.requests[0].argv == (
            "bd",
            "update",
            "todo-1",
            "--title",
            "New",
            "--set-labels",
            "x",
            "--assignee",
            "",
        )

    def test_empty_update_runs_nothing(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        backend = beads.BdCliBackend(store_dir=tmp_path, runner=runner)
        assert backend.update("todo-1", {}).ok
        assert runner.requests == []

    def test_missing_executable_is_a_failed_result(self, tmp_path: Path) -> None:
        backend = beads.BdCliBackend(store_dir=tmp_path, runner=FakeRunner([None]))
        result = backend.delete("todo-1")
        assert not result.ok
        assert result.detail == "missing required command: bd"

    def test_nonzero_exit_is_a_failed_result(self, tmp_path: Path) -> None:
        failed = exec_util.CommandResult(("bd", "close", "x"), 1, "", "no such issue")
        backend = beads.BdCliBackend(store_dir=tmp_path, runner=FakeRunner([failed]))
        result = backend.close("x")
        assert not result.ok
        assert "no such issue" in result.detail

    def test_delete_forces(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        beads.BdCliBackend(store_dir=tmp_path, runner=runner).delete("x")
        assert runner.requests[0].argv == ("bd", "delete", "x", "--force")
