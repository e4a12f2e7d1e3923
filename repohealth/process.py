"""Deadline-aware subprocess execution for checkers that shell out."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from .deadline import Deadline
from .errors import CheckTimeoutError, TransientExecutionError
from .logging import get_logger

_POLL_INTERVAL = 0.1

logger = get_logger("process")


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[[Sequence[str], Path, Deadline], CommandResult]


def run_command(args: Sequence[str], cwd: Path | str, deadline: Deadline) -> CommandResult:
    """Run ``args`` in ``cwd``, killing the process once ``deadline`` passes.

    Launch failures raise :class:`TransientExecutionError`; a passed or
    cancelled deadline raises :class:`CheckTimeoutError`.
    """
    deadline.check(f"{args[0]}")
    try:
        process = subprocess.Popen(
            list(args),
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as exc:
        raise TransientExecutionError(f"Unable to locate '{args[0]}': {exc}") from exc
    except OSError as exc:
        raise TransientExecutionError(f"Failed to launch '{args[0]}': {exc}") from exc

    while True:
        remaining: Optional[float] = deadline.remaining()
        wait = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
        try:
            stdout, stderr = process.communicate(timeout=max(wait, 0.001))
        except subprocess.TimeoutExpired:
            if deadline.expired():
                _terminate(process)
                logger.debug("Killed '%s' after deadline", " ".join(args))
                raise CheckTimeoutError(
                    f"'{' '.join(args)}' did not finish within {deadline.timeout:g}s"
                ) from None
            continue
        return CommandResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


def _terminate(process: subprocess.Popen) -> None:  # type: ignore[type-arg]
    process.kill()
    try:
        process.communicate(timeout=5)
    except subprocess.TimeoutExpired:  # pragma: no cover - depends on the OS
        logger.warning("Process %s did not exit after kill", process.pid)


__all__ = ["CommandResult", "CommandRunner", "run_command"]
