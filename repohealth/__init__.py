"""Repository health-check engine."""

from .engine import EngineOptions, HealthEngine
from .models import Finding, HealthReport, Repository, Severity

__version__ = "1.0.0"

__all__ = [
    "EngineOptions",
    "Finding",
    "HealthEngine",
    "HealthReport",
    "Repository",
    "Severity",
    "__version__",
]
