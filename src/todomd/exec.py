"""Typed subprocess boundary used by the beads command-line backend."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

TIMEOUT_RETURNCODE = 124


@dataclass(frozen=True)
class CommandRequest:
    """One command invocation.

    Attributes:
        argv: Executable and arguments.
        cwd: Working directory, or the current one when ``None``.
        env: Full environment for the child process.
        timeout_seconds: Kill the command after this many seconds.
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class CommandRunner(Protocol):
    """Runs a request; ``None`` means the executable was not found."""

    def run(self, request: CommandRequest) -> CommandResult | None: ...


class SubprocessCommandRunner:
    """Command runner backed by :func:`subprocess.run` with captured text output."""

    def run(self, request: CommandRequest) -> CommandResult | None:
        try:
            completed = subprocess.run(
                list(request.argv),
                cwd=request.cwd,
                env=dict(request.env) if request.env is not None else None,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=request.timeout_seconds,
                check=False,
            )
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                argv=request.argv,
                returncode=TIMEOUT_RETURNCODE,
                stdout=exc.stdout if isinstance(exc.stdout, str) else "",
                stderr=exc.stderr if isinstance(exc.stderr, str) else "",
                timed_out=True,
            )
        return CommandResult(
            argv=request.argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


_DEFAULT_COMMAND_RUNNER: CommandRunner = SubprocessCommandRunner()


def run_with_runner(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult | None:
    """Execute ``request`` with ``runner`` or the default subprocess runner."""
    return (runner or _DEFAULT_COMMAND_RUNNER).run(request)


def missing_command_detail(request: CommandRequest) -> str:
    """Describe a request whose executable could not be found.

    Example:
        >>> missing_command_detail(CommandRequest(argv=("bd", "list")))
        'missing required command: bd'
    """
    if not request.argv:
        return "missing required command"
    return f"missing required command: {request.argv[0]}"


def command_failure_detail(result: CommandResult) -> str:
    """Describe a failed command with its trimmed stderr (or stdout).

    Example:
        >>> failed = CommandResult(("bd", "close", "x"), 1, "", "no such issue\\n")
        >>> command_failure_detail(failed)
        'command failed: bd close x\\nno such issue'
    """
    output = (result.stderr or result.stdout or "").strip()
    command_text = " ".join(result.argv)
    if result.timed_out:
        return f"command timed out: {command_text}"
    if output:
        return f"command failed: {command_text}\n{output}"
    return f"command failed: {command_text}"
