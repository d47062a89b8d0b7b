"""Implementation for the ``todomd sync`` command."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from .. import log, sync
from ..io import die
from ..models import CONFLICT_STRATEGY_VALUES, SYNC_DIRECTION_VALUES
from .resolve import resolve_project


def _render_summary(result: sync.SyncResult) -> None:
    console = Console()
    title = "Sync Plan" if result.dry_run else "Sync"
    overview = Table(title=title, box=box.SIMPLE, show_header=False)
    overview.add_column("Field", style="bold")
    overview.add_column("Value")
    overview.add_row("Created", str(len(result.created)))
    overview.add_row("Updated", str(len(result.updated)))
    overview.add_row("Deleted", str(len(result.deleted)))
    overview.add_row("Files written", str(len(result.files_written)))
    overview.add_row("Conflicts", str(len(result.conflicts)))
    overview.add_row("Failures", str(len(result.failures)))
    console.print(overview)

    if result.conflicts:
        table = Table(title="Conflicts", box=box.SIMPLE)
        table.add_column("Issue")
        table.add_column("Fields")
        table.add_column("Winner")
        for conflict in result.conflicts:
            table.add_row(
                conflict.issue_id,
                ", ".join(sorted(conflict.fields)),
                conflict.resolution,
            )
        console.print(table)

    if result.failures:
        table = Table(title="Failures", box=box.SIMPLE)
        table.add_column("Issue")
        table.add_column("Operation")
        table.add_column("Detail")
        for failure in result.failures:
            table.add_row(failure.issue_id, failure.operation, failure.detail)
        console.print(table)


def run_sync(args: object) -> None:
    """Synchronize the Markdown tree with the beads store.

    Args:
        args: CLI argument object with ``root``, ``direction``, ``dry_run``,
            ``handle_deletions``, ``strategy``, and ``last_synced`` fields.

    Example:
        $ todomd sync --direction beads-to-files --dry-run
    """
    project_root, project_config = resolve_project(args)
    if not project_config.beads:
        die("beads integration is disabled in todo.config.json")

    direction = str(getattr(args, "direction", None) or "bidirectional")
    if direction not in SYNC_DIRECTION_VALUES:
        die(f"unsupported direction: {direction}")
    overrides: dict[str, object] = {
        "direction": direction,
        "dry_run": bool(getattr(args, "dry_run", False)),
        "handle_deletions": bool(getattr(args, "handle_deletions", False)),
    }
    strategy = getattr(args, "strategy", None)
    if strategy:
        if strategy not in CONFLICT_STRATEGY_VALUES:
            die(f"unsupported conflict strategy: {strategy}")
        overrides["conflict_strategy"] = strategy
    last_synced = getattr(args, "last_synced", None)
    if last_synced:
        overrides["last_synced_at"] = last_synced

    options = sync.SyncOptions.from_config(project_root, project_config, **overrides)
    log.debug(f"sync {options.direction} in {project_root}")
    result = sync.sync(options)
    _render_summary(result)
    if not result.ok:
        die(f"{len(result.failures)} operation(s) failed")
    log.success("sync complete" if not result.dry_run else "dry run complete")
