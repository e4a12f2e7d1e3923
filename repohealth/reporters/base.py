"""Reporter contract shared by all output formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from ..models import HealthReport


class Reporter(ABC):
    """Renders a :class:`HealthReport` without mutating it.

    ``options`` holds the reporter's configured settings; unknown keys are
    ignored and missing keys fall back to :attr:`default_options`.
    """

    name: str = ""
    extension: str = "txt"
    default_options: Mapping[str, Any] = {}

    def __init__(self, template: Optional[str] = None) -> None:
        self.template = template

    def resolve_options(self, options: Mapping[str, Any] | None) -> Dict[str, Any]:
        resolved = dict(self.default_options)
        resolved.update(options or {})
        return resolved

    @abstractmethod
    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        """Return the rendered report."""


def location(path: Optional[str], line: Optional[int]) -> str:
    if not path:
        return "-"
    return f"{path}:{line}" if line else path


__all__ = ["Reporter", "location"]
