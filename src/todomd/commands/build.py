"""Implementation for the ``todomd build`` command."""

from __future__ import annotations

from pathlib import Path

from .. import compiler, log, paths
from ..errors import PathTraversalError
from ..io import die
from .resolve import resolve_project

DEFAULT_OUTPUT = "TODO.md"


def build_todo(args: object) -> None:
    """Compile both stores into a ``TODO.md`` rollup inside the project.

    Args:
        args: CLI argument object with ``root``, ``output``, ``no_completed``,
            and ``completed_limit`` fields.

    Example:
        $ todomd build --output docs/TODO.md
    """
    project_root, project_config = resolve_project(args)
    output_arg = str(getattr(args, "output", None) or DEFAULT_OUTPUT)
    try:
        output_path = paths.ensure_within(project_root, Path(output_arg))
    except PathTraversalError as exc:
        die(str(exc))

    completed_limit = getattr(args, "completed_limit", None)
    result = compiler.compile(
        project_root,
        project_config,
        include_completed=not getattr(args, "no_completed", False),
        completed_limit=(
            compiler.DEFAULT_COMPLETED_LIMIT
            if completed_limit is None
            else int(completed_limit)
        ),
    )
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result.output, encoding="utf-8")
    except OSError as exc:
        die(f"cannot write {output_path}: {exc}")
    log.success(f"wrote {len(result.issues)} issue(s) to {output_path}")
