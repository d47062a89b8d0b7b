"""Implementation for the ``todomd init`` command.

``todomd init`` creates the Markdown issue directory and writes a
``todo.config.json`` at the project root. Existing configuration is kept
unless ``--force`` is given.
"""

from __future__ import annotations

from pathlib import Path

from .. import config, log, paths
from ..errors import TodoFailure
from ..io import die, say
from ..presets import get_builtin_preset


def init_project(args: object) -> None:
    """Initialize todomd in a project directory.

    Args:
        args: CLI argument object with ``root``, ``preset``, ``no_beads``,
            and ``force`` fields.

    Example:
        $ todomd init --preset detailed
    """
    raw_root = getattr(args, "root", None)
    project_root = Path(raw_root).expanduser().resolve() if raw_root else Path.cwd()
    config_file = paths.config_path(project_root)
    force = bool(getattr(args, "force", False))

    preset = getattr(args, "preset", None)
    if preset:
        try:
            get_builtin_preset(preset)
        except TodoFailure as exc:
            die(str(exc))

    if config_file.exists() and not force:
        say(f"Keeping existing {config_file.name}")
        try:
            project_config = config.load_config(project_root, environ={})
        except TodoFailure as exc:
            die(str(exc))
    else:
        project_config = config.TodoConfig(
            beads=not getattr(args, "no_beads", False),
            preset=preset or None,
        )
        config.write_config(project_root, project_config)
        log.success(f"wrote {config_file}")

    todo_root = project_config.todo_path(project_root)
    todo_root.mkdir(parents=True, exist_ok=True)
    say(f"Issue files live in {todo_root}")
