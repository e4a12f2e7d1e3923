"""flake8-compatible ``path:line:col: CODE message`` reporter."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, List, Mapping, Tuple

from ..config import COMPLEXITY_CHECKER_ID
from ..models import Finding, HealthReport
from .base import Reporter

COMPLEXITY_CODE = "C901"
_SEVERITY_CODES = {
    "critical": "E",
    "high": "E",
    "medium": "W",
    "low": "W",
    "info": "I",
}


class Flake8Reporter(Reporter):
    """Emits findings that carry a file path, one per line.

    Complexity findings use flake8's own ``C901`` code; other checkers map
    severity to an ``E``/``W``/``I`` prefix.
    """

    name = "flake8"
    default_options = {"show_complexity": True, "sort_by_complexity": True}

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        entries: List[Tuple[Finding, str]] = []
        for repo_name, findings in report.repositories.items():
            prefix = PurePosixPath(repo_name) if len(report.repositories) > 1 else None
            for finding in findings:
                if not finding.path:
                    continue
                path = str(prefix / finding.path) if prefix else finding.path
                entries.append((finding, path))

        if settings["sort_by_complexity"]:
            entries.sort(key=_complexity_order)

        lines = []
        for finding, path in entries:
            lines.append(f"{path}:{finding.line or 1}:1: {self._code(finding)} {self._message(finding, settings)}")
        return "\n".join(lines) + ("\n" if lines else "")

    @staticmethod
    def _code(finding: Finding) -> str:
        if _is_complexity(finding):
            return COMPLEXITY_CODE
        return f"{_SEVERITY_CODES[finding.severity.value]}900"

    @staticmethod
    def _message(finding: Finding, settings: Mapping[str, Any]) -> str:
        if _is_complexity(finding):
            name = finding.metadata.get("function", "<unknown>")
            if settings["show_complexity"]:
                return f"'{name}' is too complex ({int(finding.metric or 0)})"
            return f"'{name}' is too complex"
        return f"[{finding.checker_id}] {finding.message}"


def _complexity_order(entry: Tuple[Finding, str]) -> Tuple[int, float, str, int]:
    finding, path = entry
    if _is_complexity(finding):
        return (0, -(finding.metric or 0), path, finding.line or 0)
    return (1, 0.0, path, finding.line or 0)


def _is_complexity(finding: Finding) -> bool:
    return finding.checker_id == COMPLEXITY_CHECKER_ID and finding.metric is not None


__all__ = ["COMPLEXITY_CODE", "Flake8Reporter"]
