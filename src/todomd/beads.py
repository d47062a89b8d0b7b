"""Beads store boundary: read the JSONL issue log and drive the ``bd`` CLI."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import exec, log, paths
from .models import Issue

TOMBSTONE_STATUS = "tombstone"
BLOCKS_DEPENDENCY = "blocks"
PARENT_CHILD_DEPENDENCY = "parent-child"

_PATCH_FLAGS = {
    "title": "--title",
    "status": "--status",
    "type": "--type",
    "priority": "--priority",
    "description": "--description",
    "assignee": "--assignee",
}


class BeadsDependency(BaseModel):
    """One dependency edge as stored in the issue log."""

    model_config = ConfigDict(extra="ignore")

    issue_id: str | None = None
    depends_on_id: str
    type: str = BLOCKS_DEPENDENCY


class BeadsRecord(BaseModel):
    """One line of ``issues.jsonl``.

    Unknown keys are kept so callers can inspect the raw record.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: int | float | str | None = None
    issue_type: str | None = None
    assignee: str | None = None
    labels: list[str] | None = None
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    dependencies: list[BeadsDependency] = Field(default_factory=list)

    @field_validator("labels", mode="before")
    @classmethod
    def _coerce_labels(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _coerce_dependencies(cls, value: object) -> object:
        return value if isinstance(value, list) else []

    @property
    def is_tombstone(self) -> bool:
        return (self.status or "").strip().lower() == TOMBSTONE_STATUS

    def depends_on(self) -> list[str]:
        return [
            dep.depends_on_id
            for dep in self.dependencies
            if dep.type == BLOCKS_DEPENDENCY and dep.depends_on_id != self.id
        ]

    def parent(self) -> str | None:
        for dep in self.dependencies:
            if dep.type == PARENT_CHILD_DEPENDENCY and dep.depends_on_id != self.id:
                return dep.depends_on_id
        return None

    def to_issue(self) -> Issue:
        return Issue.model_validate(
            {
                "id": self.id,
                "title": self.title,
                "description": self.description,
                "status": self.status,
                "type": self.issue_type,
                "priority": self.priority,
                "labels": self.labels,
                "assignee": self.assignee,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "closedAt": self.closed_at,
                "dependsOn": self.depends_on() or None,
                "parent": self.parent(),
                "source": "beads",
            }
        )


def _read_records(log_path: Path) -> list[BeadsRecord]:
    try:
        text = log_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        log.warning(f"cannot read beads log {log_path}: {exc}")
        return []
    records: list[BeadsRecord] = []
    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
            record = BeadsRecord.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            log.warning(f"skipping malformed beads record {log_path}:{number}: {exc}")
            continue
        if record.is_tombstone:
            continue
        records.append(record)
    return records


def _with_inverse_edges(issues: list[Issue]) -> list[Issue]:
    blocks: dict[str, list[str]] = {}
    children: dict[str, list[str]] = {}
    for issue in issues:
        for target in issue.depends_on or ():
            blocks.setdefault(target, []).append(issue.id)
        if issue.parent:
            children.setdefault(issue.parent, []).append(issue.id)
    return [
        issue.model_copy(
            update={
                "blocks": blocks.get(issue.id) or None,
                "children": children.get(issue.id) or None,
            }
        )
        for issue in issues
    ]


def load_beads(project_root: Path, *, store_dir: Path | None = None) -> list[Issue]:
    """Load issues from the beads log under ``project_root``.

    A missing store or empty log yields an empty list. Tombstoned and
    malformed records are skipped.

    Args:
        project_root: Project directory holding ``.beads/``.
        store_dir: Explicit beads directory overriding the default location.

    Returns:
        Issues tagged ``source='beads'`` with ``blocks``/``children`` derived
        from the dependency edges of the loaded set.
    """
    directory = store_dir or paths.beads_dir(project_root)
    issues: list[Issue] = []
    for record in _read_records(paths.beads_issues_path(directory)):
        try:
            issues.append(record.to_issue())
        except ValidationError as exc:
            log.warning(f"skipping beads record {record.id!r}: {exc}")
    return _with_inverse_edges(issues)


@dataclass(frozen=True)
class BackendResult:
    """Success flag plus a human-readable detail."""

    ok: bool
    detail: str = ""


class BeadsBackend(Protocol):
    """Mutating operations the sync orchestrator needs from the beads store.

    Implementations report a rejected operation with ``BackendResult(ok=False)``
    or by raising ``BackendError``. ``BdCliBackend`` always returns a result.
    """

    def create(self, issue: Issue) -> BackendResult: ...

    def update(self, issue_id: str, patch: Mapping[str, object]) -> BackendResult: ...

    def close(self, issue_id: str) -> BackendResult: ...

    def delete(self, issue_id: str) -> BackendResult: ...


def beads_env(store_dir: Path) -> dict[str, str]:
    """Return the current environment with ``BEADS_DIR`` pointing at the store."""
    env = os.environ.copy()
    env["BEADS_DIR"] = str(store_dir)
    return env


def _csv(values: Sequence[str] | None) -> str:
    return ",".join(value for value in values or () if value)


@dataclass(frozen=True)
class BdCliBackend:
    """``BeadsBackend`` implemented over the ``bd`` command line.

    A missing executable or a non-zero exit becomes a failed
    ``BackendResult``; nothing here raises for command failures.
    """

    store_dir: Path
    cwd: Path | None = None
    runner: exec.CommandRunner | None = None
    executable: str = "bd"
    timeout_seconds: float | None = 60.0

    def _run(self, args: Sequence[str]) -> BackendResult:
        request = exec.CommandRequest(
            argv=(self.executable, *args),
            cwd=self.cwd or self.store_dir.parent,
            env=beads_env(self.store_dir),
            timeout_seconds=self.timeout_seconds,
        )
        result = exec.run_with_runner(request, runner=self.runner)
        if result is None:
            return BackendResult(ok=False, detail=exec.missing_command_detail(request))
        if not result.ok:
            return BackendResult(ok=False, detail=exec.command_failure_detail(result))
        return BackendResult(ok=True, detail=result.stdout.strip())

    def create(self, issue: Issue) -> BackendResult:
        args = [
            "create",
            issue.title,
            "--id",
            issue.id,
            "--type",
            issue.type,
            "--priority",
            str(issue.priority),
            "--description",
            issue.description or "",
        ]
        if issue.assignee:
            args.extend(["--assignee", issue.assignee])
        if issue.labels:
            args.extend(["--labels", _csv(issue.labels)])
        if issue.depends_on:
            args.extend(["--deps", _csv(issue.depends_on)])
        if issue.parent:
            args.extend(["--parent", issue.parent])
        args.append("--json")
        created = self._run(args)
        if created.ok and issue.status == "closed":
            return self.close(issue.id)
        if created.ok and issue.status in ("in_progress", "blocked"):
            return self.update(issue.id, {"status": issue.status})
        return created

    def update(self, issue_id: str, patch: Mapping[str, object]) -> BackendResult:
        args = ["update", issue_id]
        for key, value in patch.items():
            if key == "labels":
                labels = value if isinstance(value, (list, tuple)) else []
                args.extend(["--set-labels", _csv([str(item) for item in labels])])
                continue
            flag = _PATCH_FLAGS.get(key)
            if flag is None:
                log.debug(f"bd update: ignoring unsupported field {key!r}")
                continue
            args.extend([flag, "" if value is None else str(value)])
        if len(args) == 2:
            return BackendResult(ok=True, detail="nothing to update")
        return self._run(args)

    def close(self, issue_id: str) -> BackendResult:
        return self._run(["close", issue_id])

    def delete(self, issue_id: str) -> BackendResult:
        return self._run(["delete", issue_id, "--force"])
