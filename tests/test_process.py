"""Tests for deadline-aware command execution and the Deadline primitive."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from repohealth.deadline import Deadline
from repohealth.errors import CheckTimeoutError, TransientExecutionError
from repohealth.process import run_command


def test_run_command_captures_output(tmp_path: Path) -> None:
    result = run_command(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"],
        tmp_path,
        Deadline(30),
    )
    assert result.returncode == 3
    assert not result.ok
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"


def test_run_command_kills_process_after_deadline(tmp_path: Path) -> None:
    with pytest.raises(CheckTimeoutError):
        run_command([sys.executable, "-c", "import time; time.sleep(10)"], tmp_path, Deadline(0.2))


def test_missing_executable_is_transient(tmp_path: Path) -> None:
    with pytest.raises(TransientExecutionError):
        run_command(["definitely-not-a-real-binary-xyz"], tmp_path, Deadline(5))


def test_cancelled_deadline_refuses_to_start(tmp_path: Path) -> None:
    deadline = Deadline(30)
    deadline.cancel()
    with pytest.raises(CheckTimeoutError):
        run_command([sys.executable, "-c", "pass"], tmp_path, deadline)


def test_deadline_tracks_remaining_time() -> None:
    now = [100.0]
    deadline = Deadline(5, clock=lambda: now[0])

    assert deadline.remaining() == pytest.approx(5.0)
    now[0] += 4
    deadline.check()
    now[0] += 2
    assert deadline.remaining() == 0.0
    assert deadline.expired()
    with pytest.raises(CheckTimeoutError, match="exceeded timeout of 5s"):
        deadline.check("scan")


def test_unbounded_deadline_never_expires() -> None:
    deadline = Deadline.never()
    assert deadline.remaining() is None
    assert not deadline.expired()
    deadline.cancel()
    assert deadline.cancelled
    assert deadline.expired()
