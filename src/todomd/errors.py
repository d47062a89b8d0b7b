"""Failure contracts for todomd operations.

Library functions raise ``TodoFailure`` subclasses on expected input,
configuration, and path-safety failures. Extraction ambiguity and sync
conflicts are not exceptions; they are reported in result values. Programmer
bugs raise normal exceptions.
"""

from __future__ import annotations

from typing import Literal

TodoFailureCode = Literal[
    "validation_failed",
    "invalid_pattern",
    "path_traversal",
    "unknown_preset",
    "backend_failed",
    "invalid_config",
]


class TodoFailure(Exception):
    """Expected failure: validation, path safety, configuration, or backend.

    Use ``raise TodoFailure(...) from exc`` to chain a causing exception; it is
    available as ``__cause__``. Callers catch TodoFailure and handle it per
    their interface (the CLI exits non-zero, sync records it against an item).
    """

    def __init__(
        self,
        code: TodoFailureCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class ValidationFailedError(TodoFailure):
    """Input failed validation (missing id, malformed frontmatter)."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("validation_failed", message, recovery_hint=recovery_hint)


class PatternSyntaxError(ValidationFailedError):
    """Filename pattern could not be tokenized."""

    def __init__(self, message: str, *, pattern: str) -> None:
        super().__init__(message)
        self.code = "invalid_pattern"
        self.pattern = pattern


class PathTraversalError(TodoFailure):
    """A resolved write path escapes the managed root directory."""

    def __init__(self, path: str, root: str) -> None:
        super().__init__(
            "path_traversal",
            f"path traversal detected: {path!r} resolves outside {root!r}",
            recovery_hint="check the file pattern and closed_subdir settings",
        )
        self.path = path
        self.root = root


class UnknownPresetError(TodoFailure):
    """A built-in template preset name was not recognized."""

    def __init__(self, name: str, *, available: tuple[str, ...]) -> None:
        super().__init__(
            "unknown_preset",
            f"unknown preset {name!r}; available presets: {', '.join(available)}",
        )
        self.name = name


class BackendError(TodoFailure):
    """The beads backend rejected an operation.

    ``BeadsBackend`` implementations may return a failed ``BackendResult`` or raise
    this; sync records either as a per-issue failure and carries on.
    """

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("backend_failed", message, recovery_hint=recovery_hint)


class ConfigError(TodoFailure):
    """Project configuration is unreadable or invalid."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("invalid_config", message, recovery_hint=recovery_hint)
