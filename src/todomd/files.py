"""Markdown issue tree: plan, write, load, and delete issue files.

Every target path in a batch is validated to stay inside the root before
any directory or file is created.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from . import log, paths
from .errors import TodoFailure
from .frontmatter import generate, parse
from .models import Issue
from .patterns import DEFAULT_PATTERN, apply_pattern

ISSUE_SUFFIX = ".md"


@dataclass(frozen=True)
class WriteOptions:
    """Options for :func:`write_many`.

    Attributes:
        pattern: Filename pattern applied to each issue.
        separate_closed: Place closed issues under ``closed_subdir``.
        closed_subdir: Subdirectory for closed issues.
        existing_names: Relative names already taken (collision avoidance).
        previous_paths: Current file of each issue id, removed when the
            issue is written elsewhere.
    """

    pattern: str = DEFAULT_PATTERN
    separate_closed: bool = False
    closed_subdir: str = "closed"
    existing_names: Collection[str] = ()
    previous_paths: Mapping[str, Path] = field(default_factory=dict)


@dataclass(frozen=True)
class PlannedWrite:
    """Resolved destination for one issue."""

    issue: Issue
    path: Path
    relative: str


@dataclass(frozen=True)
class WriteFailure:
    issue_id: str
    detail: str


@dataclass(frozen=True)
class WriteReport:
    """Outcome of a :func:`write_many` batch.

    Attributes:
        written: Paths written, in input order.
        failed: Per-issue failures; other issues were still written.
        removed: Stale files removed after their issue moved.
    """

    written: tuple[Path, ...]
    failed: tuple[WriteFailure, ...] = ()
    removed: tuple[Path, ...] = ()


def _sanitized(issue: Issue) -> Issue:
    update: dict[str, object] = {"title": paths.sanitize_component(issue.title)}
    safe_id = paths.sanitize_component(issue.id)
    update["id"] = safe_id or "issue"
    if issue.assignee:
        update["assignee"] = paths.sanitize_component(issue.assignee) or None
    return issue.model_copy(update=update)


def plan_paths(
    issues: Sequence[Issue], root: Path, options: WriteOptions | None = None
) -> list[PlannedWrite]:
    """Compute and validate every destination without touching the disk.

    Raises:
        PathTraversalError: When the closed subdirectory or any computed
            path resolves outside ``root``.
        PatternSyntaxError: When the pattern cannot be parsed.
    """
    active = options or WriteOptions()
    root_resolved = paths.ensure_within(root, root, strict=False)
    closed_dir: Path | None = None
    if active.separate_closed and any(issue.status == "closed" for issue in issues):
        closed_dir = paths.ensure_within(root_resolved, Path(active.closed_subdir))

    taken: set[str] = set(active.existing_names)
    planned: list[PlannedWrite] = []
    for issue in issues:
        name = apply_pattern(active.pattern, _sanitized(issue), taken)
        is_closed = closed_dir is not None and issue.status == "closed"
        base = closed_dir if is_closed else None
        relative = (
            (Path(active.closed_subdir) / name).as_posix() if base is not None else name
        )
        target = paths.ensure_within(root_resolved, Path(relative))
        paths.ensure_within(root_resolved, target.parent, strict=False)
        taken.add(name)
        planned.append(PlannedWrite(issue=issue, path=target, relative=relative))
    return planned


def write_many(
    issues: Sequence[Issue], root: Path, options: WriteOptions | None = None
) -> WriteReport:
    """Write each issue as a Markdown document under ``root``.

    Path validation for the whole batch runs first; a traversal aborts the
    batch before anything is created. I/O failures are recorded per issue.
    """
    active = options or WriteOptions()
    planned = plan_paths(issues, root, active)
    written: list[Path] = []
    failed: list[WriteFailure] = []
    removed: list[Path] = []
    for item in planned:
        try:
            item.path.parent.mkdir(parents=True, exist_ok=True)
            item.path.write_text(
                generate(item.issue.with_source("file")), encoding="utf-8"
            )
        except OSError as exc:
            log.warning(f"failed to write {item.relative}: {exc}")
            failed.append(WriteFailure(issue_id=item.issue.id, detail=str(exc)))
            continue
        written.append(item.path)
        previous = active.previous_paths.get(item.issue.id)
        if previous is not None and previous.resolve() != item.path:
            stale = _remove_stale(root, previous)
            if stale is not None:
                removed.append(stale)
    return WriteReport(
        written=tuple(written), failed=tuple(failed), removed=tuple(removed)
    )


def _remove_stale(root: Path, path: Path) -> Path | None:
    try:
        target = paths.ensure_within(root, path)
        target.unlink(missing_ok=True)
    except (TodoFailure, OSError) as exc:
        log.warning(f"failed to remove stale file {path}: {exc}")
        return None
    return target


def _issue_files(root: Path) -> Iterable[Path]:
    return sorted(path for path in root.rglob(f"*{ISSUE_SUFFIX}") if path.is_file())


def load_many_with_paths(root: Path) -> list[tuple[Path, Issue]]:
    """Load every Markdown issue below ``root`` with its file path.

    A missing root yields an empty list. Unreadable or invalid documents are
    skipped with a warning.
    """
    if not root.is_dir():
        return []
    loaded: list[tuple[Path, Issue]] = []
    for path in _issue_files(root):
        try:
            issue = parse(path.read_text(encoding="utf-8"))
        except (TodoFailure, OSError, UnicodeDecodeError) as exc:
            log.warning(f"skipping {path}: {exc}")
            continue
        loaded.append((path, issue.with_source("file")))
    return loaded


def load_many(root: Path) -> list[Issue]:
    """Load every Markdown issue below ``root``, tagged ``source='file'``."""
    return [issue for _path, issue in load_many_with_paths(root)]


def existing_names(root: Path) -> set[str]:
    """Return the relative names of Markdown files currently under ``root``."""
    if not root.is_dir():
        return set()
    return {path.relative_to(root).as_posix() for path in _issue_files(root)}


def delete_issue_file(root: Path, path: Path) -> None:
    """Remove one issue file after confirming it lives inside ``root``.

    Raises:
        PathTraversalError: When ``path`` resolves outside ``root``.
    """
    target = paths.ensure_within(root, path)
    target.unlink(missing_ok=True)
    log.debug(f"deleted {target}")
