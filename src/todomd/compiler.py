"""Compile both issue stores into a single ``TODO.md`` rollup."""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from . import beads, files
from .config import TodoConfig
from .models import ConflictStrategy, Issue
from .sync import parse_timestamp
from .templates import render, resolve_template

TODO_TITLE = "TODO"
DEFAULT_COMPLETED_LIMIT = 10
TYPE_ORDER = ("epic", "bug", "feature", "task")
_TYPE_HEADINGS = {
    "bug": "Bugs",
    "feature": "Features",
    "task": "Tasks",
    "epic": "Epics",
}


@dataclass(frozen=True)
class CompileResult:
    """Rendered rollup text and the merged issues it was built from."""

    output: str
    issues: tuple[Issue, ...]


def merge_issues(
    beads_issues: Sequence[Issue],
    file_issues: Sequence[Issue],
    strategy: ConflictStrategy = "beads-wins",
) -> list[Issue]:
    """Merge both stores by id; duplicates resolve by ``strategy``.

    ``newest-wins`` keeps the beads copy when the timestamps tie.
    """
    merged: dict[str, Issue] = {issue.id: issue for issue in file_issues}
    for issue in beads_issues:
        existing = merged.get(issue.id)
        if existing is None or strategy == "beads-wins":
            merged[issue.id] = issue
            continue
        if strategy == "newest-wins":
            beads_time = parse_timestamp(issue.updated_at)
            file_time = parse_timestamp(existing.updated_at)
            beads_newer = beads_time is not None and (
                file_time is None or beads_time >= file_time
            )
            if file_time is None or beads_newer:
                merged[issue.id] = issue
    return list(merged.values())


def _type_heading(issue_type: str) -> str:
    return _TYPE_HEADINGS.get(issue_type, issue_type.capitalize() + "s")


def _type_rank(issue_type: str) -> tuple[int, str]:
    if issue_type in TYPE_ORDER:
        return TYPE_ORDER.index(issue_type), ""
    return len(TYPE_ORDER), issue_type


def format_item(issue: Issue, *, checked: bool = False) -> str:
    """Render one checklist line.

    Example:
        >>> bug = Issue(id="t-1", title="Fix", type="bug", priority=1, labels=["ui"])
        >>> format_item(bug)
        '- [ ] [#t-1] Fix - *bug, P1 #ui*'
    """
    if checked and issue.closed_at:
        closed = issue.closed_at.strip()[:10]
        return f"- [x] [#{issue.id}] {issue.title} - *closed {closed}*"
    meta = [issue.type, f"P{issue.priority}"]
    if issue.assignee:
        meta.append(f"@{issue.assignee}")
    labels = "".join(f" #{label}" for label in issue.labels or ())
    box = "[x]" if checked else "[ ]"
    return f"- {box} [#{issue.id}] {issue.title} - *{', '.join(meta)}{labels}*"


def _by_priority(issue: Issue) -> tuple[int, str]:
    return issue.priority, issue.id


def _closed_sort_key(issue: Issue) -> float:
    closed = parse_timestamp(issue.closed_at)
    return closed.timestamp() if closed is not None else 0.0


def compile_sections(
    issues: Sequence[Issue],
    *,
    include_completed: bool = True,
    completed_limit: int = DEFAULT_COMPLETED_LIMIT,
) -> str:
    """Render the rollup sections (without the top-level heading)."""
    lines: list[str] = []
    in_progress = [i for i in issues if i.status == "in_progress"]
    pending = [i for i in issues if i.status in ("open", "blocked")]
    closed = [i for i in issues if i.status == "closed"]

    if in_progress:
        lines.extend(["## In Progress", ""])
        for issue in sorted(in_progress, key=_by_priority):
            lines.append(format_item(issue))
        lines.append("")

    if pending:
        lines.extend(["## Open", ""])
        for issue_type in sorted({i.type for i in pending}, key=_type_rank):
            group = [i for i in pending if i.type == issue_type]
            lines.extend([f"### {_type_heading(issue_type)}", ""])
            lines.extend(format_item(i) for i in sorted(group, key=_by_priority))
            lines.append("")

    if include_completed and closed:
        lines.extend(["## Recently Completed", ""])
        recent = sorted(closed, key=_closed_sort_key, reverse=True)[:completed_limit]
        lines.extend(format_item(i, checked=True) for i in recent)
        lines.append("")

    return "\n".join(lines).strip()


def compile_to_string(
    issues: Sequence[Issue],
    *,
    include_completed: bool = True,
    completed_limit: int = DEFAULT_COMPLETED_LIMIT,
) -> str:
    """Render the full ``# TODO`` document.

    Example:
        >>> compile_to_string([])
        '# TODO'
    """
    sections = compile_sections(
        issues, include_completed=include_completed, completed_limit=completed_limit
    )
    return f"# {TODO_TITLE}\n\n{sections}".strip()


def todo_context(issues: Sequence[Issue], sections: str) -> dict[str, object]:
    """Values available to ``todo`` templates under the ``todo`` key."""
    generated = dt.datetime.now(tz=dt.timezone.utc).replace(microsecond=0)
    return {
        "todo": {
            "title": TODO_TITLE,
            "sections": sections,
            "count": len(issues),
            "open": sum(1 for i in issues if i.status in ("open", "blocked")),
            "in_progress": sum(1 for i in issues if i.status == "in_progress"),
            "closed": sum(1 for i in issues if i.status == "closed"),
            "generated": generated.isoformat().replace("+00:00", "Z"),
        }
    }


def compile(
    project_root: Path,
    config: TodoConfig | None = None,
    *,
    include_completed: bool = True,
    completed_limit: int = DEFAULT_COMPLETED_LIMIT,
) -> CompileResult:
    """Load both stores, merge them, and render through the ``todo`` template."""
    active = config or TodoConfig()
    beads_issues = (
        beads.load_beads(project_root, store_dir=active.beads_path(project_root))
        if active.beads
        else []
    )
    file_issues = files.load_many(active.todo_path(project_root))
    merged = merge_issues(beads_issues, file_issues, active.conflict_strategy)
    sections = compile_sections(
        merged, include_completed=include_completed, completed_limit=completed_limit
    )
    template = resolve_template("todo", active.template_config(project_root))
    output = render(template, todo_context(merged, sections)).strip() + "\n"
    return CompileResult(output=output, issues=tuple(merged))
