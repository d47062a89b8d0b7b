"""Tests for typed command execution helpers."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from todomd import exec as exec_util


def test_subprocess_command_runner_success(monkeypatch: pytest.MonkeyPatch) -> None:
    """Runner returns typed output and forwards execution options."""
    calls: dict[str, object] = {}

    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls["argv"] = argv
        calls["kwargs"] = kwargs
        return subprocess.CompletedProcess(argv, 0, stdout="ok", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    request = exec_util.CommandRequest(
        argv=("bd", "list"),
        cwd=Path("/tmp"),
        env={"BEADS_DIR": "/tmp/.beads"},
        timeout_seconds=5.0,
    )
    result = exec_util.SubprocessCommandRunner().run(request)

    assert result == exec_util.CommandResult(
        argv=("bd", "list"), returncode=0, stdout="ok", stderr=""
    )
    assert result.ok
    assert calls["argv"] == ["bd", "list"]
    run_kwargs = calls["kwargs"]
    assert isinstance(run_kwargs, dict)
    assert run_kwargs["cwd"] == Path("/tmp")
    assert run_kwargs["env"] == {"BEADS_DIR": "/tmp/.beads"}
    assert run_kwargs["capture_output"] is True
    assert run_kwargs["text"] is True
    assert run_kwargs["timeout"] == 5.0
    assert run_kwargs["stdin"] == subprocess.DEVNULL


def test_subprocess_command_runner_returns_none_when_missing_executable(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Runner returns None when executable is not found."""

    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        del argv, kwargs
        raise FileNotFoundError

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = exec_util.SubprocessCommandRunner().run(
        exec_util.CommandRequest(argv=("missing-cmd",))
    )

    assert result is None


def test_subprocess_command_runner_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Runner normalizes timeout failures into typed timeout results."""

    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        del kwargs
        raise subprocess.TimeoutExpired(
            cmd=argv, timeout=0.05, output="slow", stderr="timeout"
        )

    monkeypatch.setattr(subprocess, "run", fake_run)

    request = exec_util.CommandRequest(argv=("sleep", "1"), timeout_seconds=0.05)
    result = exec_util.SubprocessCommandRunner().run(request)

    assert result is not None
    assert result.timed_out is True
    assert result.returncode == exec_util.TIMEOUT_RETURNCODE
    assert not result.ok
    assert exec_util.command_failure_detail(result) == "command timed out: sleep 1"


def test_failure_detail_prefers_stderr() -> None:
    result = exec_util.CommandResult(("bd", "x"), 2, "out", "err\n")
    assert exec_util.command_failure_detail(result) == "command failed: bd x\nerr"
    bare = exec_util.CommandResult(("bd", "x"), 2, "", "")
    assert exec_util.command_failure_detail(bare) == "command failed: bd x"
