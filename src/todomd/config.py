"""Project configuration stored in ``todo.config.json``.

Example:
    >>> config = TodoConfig()
    >>> config.todo_dir, config.conflict_strategy
    ('.todo', 'beads-wins')
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from . import paths
from .errors import ConfigError
from .models import CONFLICT_STRATEGY_VALUES, ConflictStrategy
from .templates import TemplateConfig

ENV_PREFIX = "TODOMD_"
DEFAULT_CONFLICT_WINDOW_SECONDS = 86400

_ENV_FIELDS = {
    "BEADS": "beads",
    "BEADS_DIR": "beads_dir",
    "TODO_DIR": "todo_dir",
    "TEMPLATE_DIR": "template_dir",
    "FILE_PATTERN": "file_pattern",
    "PRESET": "preset",
    "CONFLICT_STRATEGY": "conflict_strategy",
    "SEPARATE_CLOSED": "separate_closed",
    "CLOSED_SUBDIR": "closed_subdir",
    "CONFLICT_WINDOW_SECONDS": "conflict_window_seconds",
}


class TodoConfig(BaseModel):
    """Settings for one project.

    Attributes:
        beads: Whether the beads store participates in sync.
        beads_dir: Optional override for ``<root>/.beads``.
        todo_dir: Directory holding the Markdown issue tree.
        template_dir: Directory searched for custom templates.
        file_pattern: Filename pattern; ``None`` defers to the template's
            ``$pattern`` directive and then the default.
        preset: Template preset name.
        conflict_strategy: How double-edit conflicts resolve.
        separate_closed: Write closed issues under ``closed_subdir``.
        closed_subdir: Subdirectory for closed issues.
        conflict_window_seconds: Edits this close together count as a
            conflict when no last-sync point is known.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    beads: bool = True
    beads_dir: str | None = None
    todo_dir: str = paths.TODO_DIRNAME
    template_dir: str = paths.TEMPLATE_DIRNAME
    file_pattern: str | None = None
    preset: str | None = None
    conflict_strategy: ConflictStrategy = "beads-wins"
    separate_closed: bool = False
    closed_subdir: str = "closed"
    conflict_window_seconds: int = DEFAULT_CONFLICT_WINDOW_SECONDS

    @field_validator("conflict_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace("_", "-")
        return value

    @field_validator("beads_dir", "file_pattern", "preset", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def todo_path(self, project_root: Path) -> Path:
        return paths.todo_dir(project_root, self.todo_dir)

    def beads_path(self, project_root: Path) -> Path:
        return paths.beads_dir(project_root, self.beads_dir)

    def template_config(self, project_root: Path) -> TemplateConfig:
        return TemplateConfig(
            template_dir=paths.template_dir(project_root, self.template_dir),
            preset=self.preset,
        )


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for suffix, field in _ENV_FIELDS.items():
        value = environ.get(f"{ENV_PREFIX}{suffix}")
        if value is not None:
            overrides[field] = value
    return overrides


def load_json(path: Path) -> dict | None:
    """Load a JSON object from ``path``; ``None`` when the file is missing.

    Raises:
        ConfigError: When the file is unreadable, not JSON, or not an object.
    """
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return payload


def load_config(
    project_root: Path, *, environ: Mapping[str, str] | None = None
) -> TodoConfig:
    """Read ``todo.config.json`` and apply ``TODOMD_*`` environment overrides.

    Raises:
        ConfigError: When the file or an override fails validation.
    """
    path = paths.config_path(project_root)
    payload = load_json(path) or {}
    payload.update(_env_overrides(os.environ if environ is None else environ))
    try:
        return TodoConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(
            f"invalid configuration in {path}: {exc}",
            recovery_hint="conflict_strategy must be one of "
            + ", ".join(CONFLICT_STRATEGY_VALUES),
        ) from exc


def write_config(project_root: Path, config: TodoConfig) -> Path:
    """Write ``config`` as ``todo.config.json`` and return the path."""
    path = paths.config_path(project_root)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(config.model_dump(exclude_none=True), fh, indent=2)
        fh.write("\n")
    return path
