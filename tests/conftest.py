# ruff: noqa: E402

import builtins
import os
import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import todomd.log as todomd_log

DOCTEST_MODULES = {
    ROOT / "src" / "todomd" / "__init__.py",
    ROOT / "src" / "todomd" / "compiler.py",
    ROOT / "src" / "todomd" / "config.py",
    ROOT / "src" / "todomd" / "exec.py",
    ROOT / "src" / "todomd" / "frontmatter.py",
    ROOT / "src" / "todomd" / "models.py",
    ROOT / "src" / "todomd" / "paths.py",
    ROOT / "src" / "todomd" / "patterns.py",
    ROOT / "src" / "todomd" / "presets.py",
    ROOT / "src" / "todomd" / "sync.py",
    ROOT / "src" / "todomd" / "templates.py",
}


@pytest.fixture(autouse=True)
def _quiet_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(todomd_log, "_configured_level", None)
    monkeypatch.setattr(todomd_log, "_no_color", True)
    for name in list(os.environ):
        if name.startswith("TODOMD_"):
            monkeypatch.delenv(name, raising=False)

    def fail_input(prompt: str = "") -> str:
        raise AssertionError("prompted unexpectedly")

    monkeypatch.setattr(builtins, "input", fail_input)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
