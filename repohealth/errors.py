"""Error taxonomy shared by the health-check engine."""

from __future__ import annotations


class HealthCheckError(Exception):
    """Base class for all repohealth errors."""


class ConfigError(HealthCheckError):
    """Raised when configuration cannot be loaded or is invalid.

    Configuration errors are fatal and surface before any checker runs.
    """


class CheckerNotFound(ConfigError, KeyError):
    """Raised when a checker id is not known to the registry."""

    def __init__(self, checker_id: str) -> None:
        super().__init__(f"Unknown checker: {checker_id}")
        self.checker_id = checker_id

    def __str__(self) -> str:
        return self.args[0]


class ExecutionError(HealthCheckError):
    """Raised by a checker when a single (repository, checker) task fails.

    ``transient`` errors are eligible for retry; terminal errors are not.
    """

    transient = False

    def __init__(self, message: str, *, transient: bool | None = None) -> None:
        super().__init__(message)
        if transient is not None:
            self.transient = transient


class TransientExecutionError(ExecutionError):
    """Failure that may succeed on retry (process launch, network, ...)."""

    transient = True


class TerminalExecutionError(ExecutionError):
    """Failure that will not change on retry (malformed repository, ...)."""

    transient = False


class CheckTimeoutError(TransientExecutionError):
    """Raised when a checker exceeds its deadline."""


class ReportingError(HealthCheckError):
    """Raised when a reporter cannot render or write a report."""


__all__ = [
    "CheckTimeoutError",
    "CheckerNotFound",
    "ConfigError",
    "ExecutionError",
    "HealthCheckError",
    "ReportingError",
    "TerminalExecutionError",
    "TransientExecutionError",
]
