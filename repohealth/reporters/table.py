"""Human-readable console table reporter."""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence

from ..models import Finding, HealthReport, Severity
from .base import Reporter, location

_RESET = "\033[0m"
_BOLD = "\033[1m"
_COLORS = {
    Severity.CRITICAL: "\033[1;31m",
    Severity.HIGH: "\033[31m",
    Severity.MEDIUM: "\033[33m",
    Severity.LOW: "\033[36m",
    Severity.INFO: "\033[2m",
}
_GREEN = "\033[32m"
_MAX_MESSAGE_WIDTH = 100


class TableReporter(Reporter):
    name = "table"
    default_options = {
        "show_summary": True,
        "show_details": True,
        "color_output": True,
        "max_issues_shown": 10,
    }

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        color = bool(settings["color_output"])
        limit = int(settings["max_issues_shown"] or 0)

        lines: List[str] = [self._paint(color, _BOLD, "Repository health report"), ""]
        if settings["show_details"]:
            for name, findings in report.repositories.items():
                lines.extend(self._repository_block(name, findings, color, limit))
                lines.append("")
        if settings["show_summary"]:
            lines.extend(self._summary_block(report, color))
        return "\n".join(lines).rstrip() + "\n"

    def _repository_block(
        self, name: str, findings: Sequence[Finding], color: bool, limit: int
    ) -> List[str]:
        header = self._paint(color, _BOLD, f"== {name} ==")
        if not findings:
            return [header, "  " + self._paint(color, _GREEN, "All clear")]
        shown = list(findings[:limit]) if limit > 0 else list(findings)
        rows = [
            (
                finding.severity.value,
                finding.checker_id,
                location(finding.path, finding.line),
                _truncate(finding.message),
            )
            for finding in shown
        ]
        widths = [
            max(len(title), *(len(row[index]) for row in rows))
            for index, title in enumerate(("SEVERITY", "CHECKER", "LOCATION"))
        ]
        block = [
            header,
            "  " + "  ".join(
                title.ljust(width) for title, width in zip(("SEVERITY", "CHECKER", "LOCATION"), widths)
            ) + "  MESSAGE",
        ]
        for finding, row in zip(shown, rows):
            severity = self._paint(color, _COLORS[finding.severity], row[0].ljust(widths[0]))
            block.append(
                f"  {severity}  {row[1].ljust(widths[1])}  {row[2].ljust(widths[2])}  {row[3]}"
            )
        hidden = len(findings) - len(shown)
        if hidden > 0:
            block.append(f"  ... and {hidden} more")
        return block

    def _summary_block(self, report: HealthReport, color: bool) -> List[str]:
        summary = report.summary
        lines = [
            self._paint(color, _BOLD, "Summary"),
            f"  Critical: {summary.critical}",
            f"  Warning:  {summary.warning}",
            f"  Info:     {summary.info}",
            f"  Total:    {summary.total}",
        ]
        if report.categories:
            lines.append(self._paint(color, _BOLD, "Categories"))
            width = max(len(name) for name in report.categories)
            for name, category in report.categories.items():
                counts = ", ".join(
                    f"{severity}={count}" for severity, count in category.counts.items() if count
                )
                lines.append(f"  {name.ljust(width)}  {counts or 'clean'}")
        return lines

    @staticmethod
    def _paint(enabled: bool, code: str, text: str) -> str:
        return f"{code}{text}{_RESET}" if enabled else text


def _truncate(message: str) -> str:
    single = " ".join(message.split())
    if len(single) <= _MAX_MESSAGE_WIDTH:
        return single
    return single[: _MAX_MESSAGE_WIDTH - 3] + "..."


__all__ = ["TableReporter"]
