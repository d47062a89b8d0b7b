"""Shared project resolution for CLI commands."""

from __future__ import annotations

from pathlib import Path

from .. import config
from ..errors import ConfigError
from ..io import die


def resolve_project(args: object) -> tuple[Path, config.TodoConfig]:
    """Return the project root from ``args.root`` and its loaded configuration.

    Exits non-zero when the configuration cannot be loaded.
    """
    raw_root = getattr(args, "root", None)
    project_root = Path(raw_root).expanduser().resolve() if raw_root else Path.cwd()
    try:
        project_config = config.load_config(project_root)
    except ConfigError as exc:
        hint = f" ({exc.recovery_hint})" if exc.recovery_hint else ""
        die(f"{exc}{hint}")
    return project_root, project_config
