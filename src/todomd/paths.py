"""Path helpers for locating todomd directories and keeping writes contained."""

from __future__ import annotations

import os
import re
from pathlib import Path

from .errors import PathTraversalError
from .models import TemplateKind

BEADS_DIRNAME = ".beads"
BEADS_ISSUES_FILENAME = "issues.jsonl"
TODO_DIRNAME = ".todo"
TEMPLATE_DIRNAME = ".mdx"
PRESETS_DIRNAME = "presets"
CONFIG_FILENAME = "todo.config.json"
TEMPLATE_SUFFIX = ".mdx"

_TEMPLATE_FILENAMES: dict[str, str] = {
    "issue": "[Issue].mdx",
    "todo": "TODO.mdx",
}

_RESERVED_CHARS = re.compile(r'[:<>|*?"]')
_DOT_RUN = re.compile(r"\.{2,}")
_DASH_RUN = re.compile(r"-{2,}")


def beads_dir(project_root: Path, override: str | Path | None = None) -> Path:
    """Return the beads store directory for a project.

    Example:
        >>> beads_dir(Path("/tmp/project")).name == BEADS_DIRNAME
        True
    """
    if override is not None:
        candidate = Path(override)
        return candidate if candidate.is_absolute() else project_root / candidate
    return project_root / BEADS_DIRNAME


def beads_issues_path(store_dir: Path) -> Path:
    """Return the JSONL issue log inside a beads store directory.

    Example:
        >>> beads_issues_path(Path("/tmp/p/.beads")).name
        'issues.jsonl'
    """
    return store_dir / BEADS_ISSUES_FILENAME


def todo_dir(project_root: Path, name: str = TODO_DIRNAME) -> Path:
    return project_root / name


def template_dir(project_root: Path, name: str = TEMPLATE_DIRNAME) -> Path:
    return project_root / name


def template_path(directory: Path, kind: TemplateKind) -> Path:
    """Return the conventional custom template path for ``kind``.

    Example:
        >>> template_path(Path(".mdx"), "issue").name
        '[Issue].mdx'
    """
    return directory / _TEMPLATE_FILENAMES[kind]


def preset_path(directory: Path, name: str) -> Path:
    """Return the file checked for a named preset under ``directory/presets``.

    Example:
        >>> preset_path(Path(".mdx"), "github").as_posix()
        '.mdx/presets/github.mdx'
    """
    return directory / PRESETS_DIRNAME / f"{sanitize_component(name)}{TEMPLATE_SUFFIX}"


def config_path(project_root: Path) -> Path:
    return project_root / CONFIG_FILENAME


def sanitize_component(value: str) -> str:
    """Strip characters that could steer a path out of its directory.

    Removes null bytes, backslashes, and OS-reserved characters, collapses
    ``..`` runs, turns ``/`` into ``-``, and trims edge dashes and dots.

    Example:
        >>> sanitize_component("../../../etc/passwd")
        'etc-passwd'
        >>> sanitize_component('a:b<c>"d"')
        'abcd'
    """
    cleaned = value.replace("\x00", "").replace("\\", "")
    cleaned = _RESERVED_CHARS.sub("", cleaned)
    cleaned = _DOT_RUN.sub("", cleaned)
    cleaned = cleaned.replace("/", "-")
    cleaned = _DASH_RUN.sub("-", cleaned)
    return cleaned.strip().strip("-.").strip()


def _is_within(root: Path, candidate: Path, *, strict: bool) -> bool:
    try:
        relative = candidate.relative_to(root)
    except ValueError:
        return False
    if strict and relative == Path("."):
        return False
    return ".." not in relative.parts


def ensure_within(root: Path, path: Path, *, strict: bool = True) -> Path:
    """Resolve ``path`` and require it to sit inside ``root``.

    Relative paths are taken relative to ``root``. With ``strict`` the root
    itself is rejected so callers cannot write over the directory.

    Returns:
        The resolved path.

    Raises:
        PathTraversalError: When the resolved path leaves ``root``.

    Example:
        >>> ensure_within(Path("/tmp/t"), Path("a/b.md")).as_posix().endswith("a/b.md")
        True
    """
    resolved_root = Path(os.path.abspath(root)).resolve()
    candidate = path if path.is_absolute() else resolved_root / path
    resolved = candidate.resolve()
    if not _is_within(resolved_root, resolved, strict=strict):
        raise PathTraversalError(str(path), str(resolved_root))
    return resolved
