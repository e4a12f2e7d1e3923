"""HTML reporter rendered from a Jinja2 template."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from ..errors import ReportingError
from ..models import HealthReport, Severity
from .base import Reporter, location

DEFAULT_TEMPLATE = "report.html.j2"
TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
_THEMES = ("light", "dark")


class HtmlReporter(Reporter):
    """Renders ``report.html.j2`` (or a user template) with chart data.

    A configured template path is searched before the built-in templates
    directory, so a custom template may ``{% extends %}`` the default.
    """

    name = "html"
    extension = "html"
    default_options = {"include_charts": True, "theme": "light"}

    def __init__(self, template: Optional[str] = None) -> None:
        super().__init__(template)
        self._env = self._create_env(template)

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        theme = str(settings["theme"]).lower()
        if theme not in _THEMES:
            raise ReportingError(f"Unknown HTML theme '{theme}' (expected one of: {', '.join(_THEMES)})")
        template_name = Path(self.template).name if self.template else DEFAULT_TEMPLATE
        try:
            template = self._env.get_template(template_name)
            return template.render(
                report=report,
                theme=theme,
                include_charts=bool(settings["include_charts"]),
                chart=_chart_data(report),
                location=location,
                generated_at=report.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
            )
        except TemplateError as exc:
            raise ReportingError(f"Failed to render HTML template '{template_name}': {exc}") from exc

    @staticmethod
    def _create_env(template: Optional[str]) -> Environment:
        directories: List[str] = []
        if template:
            custom = Path(template).expanduser()
            if custom.parent != Path("."):
                directories.append(str(custom.parent))
        directories.append(str(TEMPLATES_DIR))
        return Environment(
            loader=FileSystemLoader(directories),
            autoescape=select_autoescape(["html", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )


def _chart_data(report: HealthReport) -> List[Dict[str, Any]]:
    counts = {severity: 0 for severity in Severity}
    for finding in report.findings():
        counts[finding.severity] += 1
    peak = max(counts.values()) or 1
    return [
        {
            "label": severity.value,
            "count": counts[severity],
            "percent": round(100 * counts[severity] / peak),
        }
        for severity in sorted(Severity, key=lambda item: item.rank, reverse=True)
    ]


__all__ = ["HtmlReporter"]
