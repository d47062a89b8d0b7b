"""Command implementations exposed by the todomd CLI."""

from .build import build_todo
from .init import init_project
from .sync import run_sync

__all__ = [
    "build_todo",
    "init_project",
    "run_sync",
]
