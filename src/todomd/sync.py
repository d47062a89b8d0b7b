"""Two-way synchronization between the Markdown tree and the beads store.

``detect_changes`` compares the two issue collections by id and sorts every
difference into a ``ChangeSet``. ``sync`` loads both sides, detects changes,
and applies them according to the direction, deletion, and dry-run options.
Each create/update/delete is isolated: a failure is recorded against its
issue and the rest of the batch continues.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from . import beads, files, log
from .config import TodoConfig
from .errors import TodoFailure
from .frontmatter import issue_body_description
from .models import ConflictStrategy, Issue, SyncDirection
from .patterns import DEFAULT_PATTERN
from .templates import resolve_template, template_pattern

Side = Literal["beads", "file"]
SyncOperation = Literal["create", "update", "close", "delete", "write", "remove"]

DEFAULT_CONFLICT_WINDOW = dt.timedelta(days=1)

_COMPARED_FIELDS = (
    "title",
    "status",
    "type",
    "priority",
    "description",
    "assignee",
    "labels",
    "depends_on",
    "blocks",
    "parent",
)
_PATCH_FIELDS = (
    "title",
    "status",
    "type",
    "priority",
    "description",
    "assignee",
    "labels",
)


@dataclass(frozen=True)
class SyncConflict:
    """An issue edited on both sides since the last known sync point.

    Attributes:
        issue_id: Conflicting issue id.
        fields: Differing fields mapped to ``{"beads": ..., "file": ...}``.
        resolution: Side whose version is applied.
        beads_updated_at: ``updatedAt`` of the beads copy.
        file_updated_at: ``updatedAt`` of the file copy.
    """

    issue_id: str
    fields: dict[str, dict[str, object]]
    resolution: Side
    beads_updated_at: str | None = None
    file_updated_at: str | None = None


@dataclass(frozen=True)
class ChangeSet:
    """Differences between the beads and file collections.

    ``to_files`` holds beads copies to write (newer, or missing as a file);
    ``to_beads`` holds file copies to push. Ids present on one side only are
    also listed in ``deleted_files`` (beads only) or ``deleted_from_beads``
    (files only).
    """

    to_beads: tuple[Issue, ...] = ()
    to_files: tuple[Issue, ...] = ()
    conflicts: tuple[SyncConflict, ...] = ()
    deleted_files: tuple[str, ...] = ()
    deleted_from_beads: tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncFailure:
    issue_id: str
    operation: SyncOperation
    detail: str


@dataclass
class SyncResult:
    """What one sync run did, or would do under ``dry_run``."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    files_written: list[str] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    failures: list[SyncFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class SyncOptions:
    """Inputs for :func:`sync`.

    Attributes:
        project_root: Project directory.
        todo_dir: Markdown tree; defaults to ``<project_root>/.todo``.
        beads_dir: Beads store; defaults to ``<project_root>/.beads``.
        direction: Which side may be written.
        handle_deletions: Delete on the other side instead of recreating.
        dry_run: Report the plan without mutating anything.
        conflict_strategy: Resolution for double edits.
        last_synced_at: ISO-8601 time of the previous sync, when known.
        conflict_window: Edits closer than this conflict when
            ``last_synced_at`` is unknown.
        pattern: Filename pattern for written issues.
        separate_closed: Write closed issues to ``closed_subdir``.
        closed_subdir: Subdirectory for closed issues.
    """

    project_root: Path = Path(".")
    todo_dir: Path | None = None
    beads_dir: Path | None = None
    direction: SyncDirection = "bidirectional"
    handle_deletions: bool = False
    dry_run: bool = False
    conflict_strategy: ConflictStrategy = "beads-wins"
    last_synced_at: str | None = None
    conflict_window: dt.timedelta = DEFAULT_CONFLICT_WINDOW
    pattern: str = DEFAULT_PATTERN
    separate_closed: bool = False
    closed_subdir: str = "closed"

    @property
    def todo_root(self) -> Path:
        return self.todo_dir or self.project_root / ".todo"

    @property
    def beads_root(self) -> Path:
        return self.beads_dir or self.project_root / ".beads"

    @classmethod
    def from_config(
        cls, project_root: Path, config: TodoConfig, **overrides: object
    ) -> SyncOptions:
        """Build options from project configuration plus explicit overrides."""
        pattern = config.file_pattern or template_pattern(
            resolve_template("issue", config.template_config(project_root))
        )
        options = cls(
            project_root=project_root,
            todo_dir=config.todo_path(project_root),
            beads_dir=config.beads_path(project_root),
            conflict_strategy=config.conflict_strategy,
            conflict_window=dt.timedelta(seconds=config.conflict_window_seconds),
            pattern=pattern or DEFAULT_PATTERN,
            separate_closed=config.separate_closed,
            closed_subdir=config.closed_subdir,
        )
        return replace(options, **overrides) if overrides else options


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Example:
        >>> parse_timestamp("2024-05-01T10:00:00Z").isoformat()
        '2024-05-01T10:00:00+00:00'
        >>> parse_timestamp("not a date") is None
        True
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _comparable(issue: Issue, name: str) -> object:
    if name == "description":
        return issue_body_description(issue)
    value = getattr(issue, name)
    if isinstance(value, list):
        return tuple(value)
    if value is None and name in ("labels", "depends_on", "blocks"):
        return ()
    return value


def differing_fields(
    beads_issue: Issue, file_issue: Issue
) -> dict[str, dict[str, object]]:
    """Return the compared fields whose values differ between the two copies."""
    diffs: dict[str, dict[str, object]] = {}
    for name in _COMPARED_FIELDS:
        beads_value = _comparable(beads_issue, name)
        file_value = _comparable(file_issue, name)
        if beads_value != file_value:
            diffs[name] = {"beads": beads_value, "file": file_value}
    return diffs


_EPOCH = dt.datetime.fromtimestamp(0, tz=dt.timezone.utc)


def _newer(
    beads_time: dt.datetime | None, file_time: dt.datetime | None
) -> Side | None:
    beads_value = beads_time or _EPOCH
    file_value = file_time or _EPOCH
    if beads_value == file_value:
        return None
    return "beads" if beads_value > file_value else "file"


def _winner(
    beads_issue: Issue,
    file_issue: Issue,
    *,
    last_synced: dt.datetime | None,
    window: dt.timedelta,
) -> Side | None:
    """Side whose copy wins, or ``None`` when the edit is a conflict."""
    beads_time = parse_timestamp(beads_issue.updated_at)
    file_time = parse_timestamp(file_issue.updated_at)
    if last_synced is not None:
        beads_changed = beads_time is not None and beads_time > last_synced
        file_changed = file_time is not None and file_time > last_synced
        if beads_changed and file_changed:
            return None
        if beads_changed or file_changed:
            return "beads" if beads_changed else "file"
        return _newer(beads_time, file_time)
    if beads_time is None and file_time is None:
        return None
    if beads_time is not None and file_time is not None:
        if abs(beads_time - file_time) < window:
            return None
    return _newer(beads_time, file_time)


def _resolve(
    strategy: ConflictStrategy, beads_issue: Issue, file_issue: Issue
) -> Side:
    if strategy == "file-wins":
        return "file"
    if strategy == "newest-wins":
        newer = _newer(
            parse_timestamp(beads_issue.updated_at),
            parse_timestamp(file_issue.updated_at),
        )
        return newer or "beads"
    return "beads"


def detect_changes(
    beads_issues: Sequence[Issue],
    file_issues: Sequence[Issue],
    *,
    strategy: ConflictStrategy = "beads-wins",
    last_synced_at: str | None = None,
    conflict_window: dt.timedelta = DEFAULT_CONFLICT_WINDOW,
) -> ChangeSet:
    """Compare the two collections by id.

    Args:
        beads_issues: Issues loaded from the beads store.
        file_issues: Issues loaded from the Markdown tree.
        strategy: Resolution recorded on each conflict.
        last_synced_at: Previous sync time; enables the precise conflict rule.
        conflict_window: Heuristic conflict window used without a sync point.

    Returns:
        The change set. Conflicts are listed only in ``conflicts``.
    """
    beads_by_id = {issue.id: issue for issue in beads_issues}
    files_by_id = {issue.id: issue for issue in file_issues}
    last_synced = parse_timestamp(last_synced_at)

    to_beads: list[Issue] = []
    to_files: list[Issue] = []
    conflicts: list[SyncConflict] = []
    deleted_files: list[str] = []
    deleted_from_beads: list[str] = []

    for file_issue in file_issues:
        beads_issue = beads_by_id.get(file_issue.id)
        if beads_issue is None:
            to_beads.append(file_issue)
            deleted_from_beads.append(file_issue.id)
            continue
        fields = differing_fields(beads_issue, file_issue)
        if not fields:
            continue
        side = _winner(
            beads_issue, file_issue, last_synced=last_synced, window=conflict_window
        )
        if side == "beads":
            to_files.append(beads_issue)
        elif side == "file":
            to_beads.append(file_issue)
        else:
            conflicts.append(
                SyncConflict(
                    issue_id=file_issue.id,
                    fields=fields,
                    resolution=_resolve(strategy, beads_issue, file_issue),
                    beads_updated_at=beads_issue.updated_at,
                    file_updated_at=file_issue.updated_at,
                )
            )

    for beads_issue in beads_issues:
        if beads_issue.id not in files_by_id:
            to_files.append(beads_issue)
            deleted_files.append(beads_issue.id)

    return ChangeSet(
        to_beads=tuple(to_beads),
        to_files=tuple(to_files),
        conflicts=tuple(conflicts),
        deleted_files=tuple(deleted_files),
        deleted_from_beads=tuple(deleted_from_beads),
    )


@dataclass
class _Plan:
    file_writes: list[Issue] = field(default_factory=list)
    file_removals: list[str] = field(default_factory=list)
    beads_creates: list[Issue] = field(default_factory=list)
    beads_updates: list[Issue] = field(default_factory=list)
    beads_deletes: list[str] = field(default_factory=list)


def _plan(
    changes: ChangeSet,
    options: SyncOptions,
    beads_by_id: Mapping[str, Issue],
    files_by_id: Mapping[str, Issue],
) -> _Plan:
    plan = _Plan()
    beads_only = set(changes.deleted_files)
    files_only = set(changes.deleted_from_beads)
    write_files = options.direction in ("beads-to-files", "bidirectional")
    write_beads = options.direction in ("files-to-beads", "bidirectional")

    for issue in changes.to_files:
        if issue.id not in beads_only:
            if write_files:
                plan.file_writes.append(issue)
            continue
        if options.direction == "beads-to-files" or not options.handle_deletions:
            plan.file_writes.append(issue)
        else:
            plan.beads_deletes.append(issue.id)

    for issue in changes.to_beads:
        if issue.id not in files_only:
            if write_beads:
                plan.beads_updates.append(issue)
            continue
        if options.handle_deletions and options.direction != "files-to-beads":
            plan.file_removals.append(issue.id)
        elif write_beads:
            plan.beads_creates.append(issue)

    for conflict in changes.conflicts:
        if conflict.resolution == "beads" and write_files:
            plan.file_writes.append(beads_by_id[conflict.issue_id])
        elif conflict.resolution == "file" and write_beads:
            plan.beads_updates.append(files_by_id[conflict.issue_id])
    return plan


def _for_beads(issue: Issue) -> Issue:
    description = issue_body_description(issue) or None
    return issue.model_copy(update={"description": description})


def _update_patch(file_issue: Issue, beads_issue: Issue | None) -> dict[str, object]:
    target = _for_beads(file_issue)
    patch: dict[str, object] = {}
    for name in _PATCH_FIELDS:
        unchanged = beads_issue is not None and (
            _comparable(beads_issue, name) == _comparable(target, name)
        )
        if unchanged:
            continue
        value = getattr(target, name)
        patch[name] = list(value) if isinstance(value, list) else value
    return patch


def _record_backend(
    result: SyncResult,
    issue_id: str,
    operation: SyncOperation,
    outcome: beads.BackendResult,
) -> bool:
    if outcome.ok:
        return True
    log.warning(f"beads {operation} failed for {issue_id}: {outcome.detail}")
    result.failures.append(SyncFailure(issue_id, operation, outcome.detail))
    return False


def _record_error(
    result: SyncResult, issue_id: str, operation: SyncOperation, exc: Exception
) -> None:
    log.warning(f"{operation} failed for {issue_id}: {exc}")
    result.failures.append(SyncFailure(issue_id, operation, str(exc)))


def _apply_beads_update(
    backend: beads.BeadsBackend,
    result: SyncResult,
    file_issue: Issue,
    beads_issue: Issue | None,
) -> None:
    patch = _update_patch(file_issue, beads_issue)
    closing = patch.get("status") == "closed"
    if closing:
        patch.pop("status")
    if not patch and not closing:
        log.debug(f"{file_issue.id}: no beads-updatable fields changed")
        return
    if patch and not _record_backend(
        result, file_issue.id, "update", backend.update(file_issue.id, patch)
    ):
        return
    if closing and not _record_backend(
        result, file_issue.id, "close", backend.close(file_issue.id)
    ):
        return
    result.updated.append(file_issue.id)


def _apply_beads(
    plan: _Plan,
    backend: beads.BeadsBackend,
    result: SyncResult,
    beads_by_id: Mapping[str, Issue],
) -> None:
    for issue in plan.beads_creates:
        try:
            outcome = backend.create(_for_beads(issue))
            if _record_backend(result, issue.id, "create", outcome):
                result.created.append(issue.id)
        except (TodoFailure, OSError) as exc:
            _record_error(result, issue.id, "create", exc)
    for issue in plan.beads_updates:
        try:
            _apply_beads_update(backend, result, issue, beads_by_id.get(issue.id))
        except (TodoFailure, OSError) as exc:
            _record_error(result, issue.id, "update", exc)
    for issue_id in plan.beads_deletes:
        try:
            if _record_backend(result, issue_id, "delete", backend.delete(issue_id)):
                result.deleted.append(issue_id)
        except (TodoFailure, OSError) as exc:
            _record_error(result, issue_id, "delete", exc)


def _write_options(
    options: SyncOptions,
    writing: Sequence[Issue],
    file_paths: Mapping[str, Path],
) -> files.WriteOptions:
    root = options.todo_root
    writing_ids = {issue.id for issue in writing}
    owned = {
        path.relative_to(root).as_posix()
        for issue_id, path in file_paths.items()
        if issue_id in writing_ids and path.is_relative_to(root)
    }
    return files.WriteOptions(
        pattern=options.pattern,
        separate_closed=options.separate_closed,
        closed_subdir=options.closed_subdir,
        existing_names=files.existing_names(root) - owned,
        previous_paths={
            issue_id: path
            for issue_id, path in file_paths.items()
            if issue_id in writing_ids
        },
    )


def _relative(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def _apply_files(
    plan: _Plan,
    options: SyncOptions,
    result: SyncResult,
    file_paths: Mapping[str, Path],
) -> None:
    root = options.todo_root
    if plan.file_writes:
        write_options = _write_options(options, plan.file_writes, file_paths)
        try:
            if options.dry_run:
                planned = files.plan_paths(plan.file_writes, root, write_options)
                written_ids = [item.issue.id for item in planned]
                written = [item.relative for item in planned]
            else:
                report = files.write_many(plan.file_writes, root, write_options)
                failed_ids = {failure.issue_id for failure in report.failed}
                for failure in report.failed:
                    result.failures.append(
                        SyncFailure(failure.issue_id, "write", failure.detail)
                    )
                written_ids = [i.id for i in plan.file_writes if i.id not in failed_ids]
                written = [_relative(root, path) for path in report.written]
        except TodoFailure as exc:
            for issue in plan.file_writes:
                _record_error(result, issue.id, "write", exc)
        else:
            result.files_written.extend(written)
            for issue_id in written_ids:
                bucket = result.updated if issue_id in file_paths else result.created
                if issue_id not in bucket:
                    bucket.append(issue_id)

    for issue_id in plan.file_removals:
        path = file_paths.get(issue_id)
        if path is None:
            continue
        try:
            if not options.dry_run:
                files.delete_issue_file(root, path)
        except (TodoFailure, OSError) as exc:
            _record_error(result, issue_id, "remove", exc)
            continue
        result.deleted.append(issue_id)


def _apply_planned_beads(plan: _Plan, result: SyncResult) -> None:
    result.created.extend(issue.id for issue in plan.beads_creates)
    result.updated.extend(issue.id for issue in plan.beads_updates)
    result.deleted.extend(plan.beads_deletes)


def sync(
    options: SyncOptions | None = None,
    *,
    backend: beads.BeadsBackend | None = None,
) -> SyncResult:
    """Synchronize the Markdown tree with the beads store.

    Args:
        options: Sync settings; defaults operate on the current directory.
        backend: Beads write boundary; defaults to the ``bd`` CLI backend.

    Returns:
        Created, updated, and deleted ids, files written, conflicts, and
        per-issue failures. Under ``dry_run`` the same lists describe the
        planned changes and nothing is mutated.
    """
    active = options or SyncOptions()
    active_backend = backend or beads.BdCliBackend(
        store_dir=active.beads_root, cwd=active.project_root
    )
    beads_issues = beads.load_beads(active.project_root, store_dir=active.beads_root)
    loaded = files.load_many_with_paths(active.todo_root)
    file_issues = [issue for _path, issue in loaded]
    file_paths = {issue.id: path for path, issue in loaded}

    changes = detect_changes(
        beads_issues,
        file_issues,
        strategy=active.conflict_strategy,
        last_synced_at=active.last_synced_at,
        conflict_window=active.conflict_window,
    )
    beads_by_id = {issue.id: issue for issue in beads_issues}
    files_by_id = {issue.id: issue for issue in file_issues}
    plan = _plan(changes, active, beads_by_id, files_by_id)

    result = SyncResult(conflicts=list(changes.conflicts), dry_run=active.dry_run)
    if active.dry_run:
        _apply_planned_beads(plan, result)
        log.info(
            f"dry run: {len(plan.beads_creates)} create, "
            f"{len(plan.beads_updates)} update, "
            f"{len(plan.beads_deletes) + len(plan.file_removals)} delete, "
            f"{len(plan.file_writes)} file write(s)"
        )
    else:
        _apply_beads(plan, active_backend, result, beads_by_id)
    _apply_files(plan, active, result, file_paths)
    return result
