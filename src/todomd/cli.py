"""Command-line entry point for todomd."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Optional

import typer

from . import __version__
from . import log as todomd_log
from .commands import build_todo as build_cmd
from .commands import init_project as init_cmd
from .commands import run_sync as sync_cmd
from .models import CONFLICT_STRATEGY_VALUES, SYNC_DIRECTION_VALUES

app = typer.Typer(
    name="todomd",
    help="Keep a Markdown issue tree in sync with a beads store.",
    no_args_is_help=True,
    add_completion=False,
)


def _choice_callback(values: tuple[str, ...]):
    def validate(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in values:
            raise typer.BadParameter(f"expected one of: {', '.join(values)}")
        return normalized

    return validate


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"todomd {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level: " + ", ".join(todomd_log.LEVEL_NAMES),
        callback=_choice_callback(todomd_log.LEVEL_NAMES),
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable colorized log output."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Global options applied before any command runs."""
    if log_level is not None:
        todomd_log.set_level(log_level)
    if no_color:
        todomd_log.set_no_color(True)


@app.command("sync")
def sync(
    direction: str = typer.Option(
        "bidirectional",
        "--direction",
        "-d",
        help="One of: " + ", ".join(SYNC_DIRECTION_VALUES),
        callback=_choice_callback(SYNC_DIRECTION_VALUES),
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Report planned changes without writing."
    ),
    handle_deletions: bool = typer.Option(
        False,
        "--handle-deletions",
        help="Propagate deletions instead of recreating missing issues.",
    ),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        help="Conflict strategy: " + ", ".join(CONFLICT_STRATEGY_VALUES),
        callback=_choice_callback(CONFLICT_STRATEGY_VALUES),
    ),
    last_synced: Optional[str] = typer.Option(
        None,
        "--last-synced",
        help="ISO-8601 time of the previous sync, for conflict detection.",
    ),
    root: Optional[str] = typer.Option(None, "--root", help="Project directory."),
) -> None:
    """Synchronize .todo/ Markdown files with beads."""
    sync_cmd(
        SimpleNamespace(
            direction=direction,
            dry_run=dry_run,
            handle_deletions=handle_deletions,
            strategy=strategy,
            last_synced=last_synced,
            root=root,
        )
    )


@app.command("build")
def build(
    output: str = typer.Option("TODO.md", "--output", "-o", help="Output file."),
    no_completed: bool = typer.Option(
        False, "--no-completed", help="Omit the recently completed section."
    ),
    completed_limit: int = typer.Option(
        10, "--completed-limit", min=0, help="Closed issues to list."
    ),
    root: Optional[str] = typer.Option(None, "--root", help="Project directory."),
) -> None:
    """Compile a TODO.md rollup from both stores."""
    build_cmd(
        SimpleNamespace(
            output=output,
            no_completed=no_completed,
            completed_limit=completed_limit,
            root=root,
        )
    )


@app.command("init")
def init(
    preset: Optional[str] = typer.Option(
        None, "--preset", help="Built-in issue template preset."
    ),
    no_beads: bool = typer.Option(
        False, "--no-beads", help="Disable beads integration."
    ),
    force: bool = typer.Option(
        False, "--force", help="Overwrite an existing todo.config.json."
    ),
    root: Optional[str] = typer.Option(None, "--root", help="Project directory."),
) -> None:
    """Create the issue directory and todo.config.json."""
    init_cmd(SimpleNamespace(preset=preset, no_beads=no_beads, force=force, root=root))


if __name__ == "__main__":
    app()
