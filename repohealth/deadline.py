"""Absolute deadlines with cooperative cancellation for checker execution."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .errors import CheckTimeoutError


class Deadline:
    """Absolute point in time a checker invocation must finish by.

    The engine creates one deadline per attempt and passes it to the checker.
    Long-running checkers call :meth:`check` between units of work; the engine
    calls :meth:`cancel` once it stops waiting for the attempt, after which
    :meth:`check` raises even if time remains.
    """

    def __init__(
        self,
        timeout: Optional[float],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.timeout = timeout
        self.at: Optional[float] = None if timeout is None else clock() + max(timeout, 0.0)
        self._cancelled = threading.Event()

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, ``None`` when unbounded, never negative."""
        if self.at is None:
            return None
        return max(self.at - self._clock(), 0.0)

    def expired(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.at is not None and self._clock() >= self.at

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self, what: str = "operation") -> None:
        """Raise :class:`CheckTimeoutError` when the deadline has passed."""
        if self._cancelled.is_set():
            raise CheckTimeoutError(f"{what} cancelled after deadline")
        if self.at is not None and self._clock() >= self.at:
            raise CheckTimeoutError(f"{what} exceeded timeout of {self.timeout:g}s")


__all__ = ["Deadline"]
