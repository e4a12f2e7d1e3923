"""Reporter implementations and format lookup."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import ReporterDefinition
from ..errors import ReportingError
from ..logging import get_logger
from ..models import HealthReport
from .base import Reporter
from .csv_export import CsvReporter
from .flake8 import Flake8Reporter
from .html import HtmlReporter
from .junit import JUnitReporter
from .serialized import JsonReporter, YamlReporter
from .table import TableReporter

_REPORTERS: Dict[str, Callable[[Optional[str]], Reporter]] = {
    "table": TableReporter,
    "json": JsonReporter,
    "yaml": YamlReporter,
    "xml": JUnitReporter,
    "html": HtmlReporter,
    "csv": CsvReporter,
    "flake8": Flake8Reporter,
}

_ALIASES = {
    "console": "table",
    "text": "table",
    "yml": "yaml",
    "junit": "xml",
}

logger = get_logger("reporters")


def available_formats() -> List[str]:
    return sorted(_REPORTERS)


def canonical_format(name: str) -> str:
    key = name.strip().lower()
    key = _ALIASES.get(key, key)
    if key not in _REPORTERS:
        raise ReportingError(
            f"Unsupported output format '{name}' (expected one of: {', '.join(available_formats())})"
        )
    return key


def get_reporter(name: str, definition: ReporterDefinition | None = None) -> Reporter:
    key = canonical_format(name)
    template = definition.template if definition is not None else None
    # the table and xml definitions name built-in layouts, not template files
    if key != "html":
        template = None
    return _REPORTERS[key](template)


def render_report(
    report: HealthReport,
    name: str,
    definitions: Mapping[str, ReporterDefinition] | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
) -> str:
    """Render ``report`` with the named reporter and its configured options."""
    key = canonical_format(name)
    definition = (definitions or {}).get(key)
    reporter = get_reporter(key, definition)
    options: Dict[str, Any] = dict(definition.options) if definition is not None else {}
    options.update(overrides or {})
    return reporter.render(report, options)


def write_report(content: str, path: Path | str) -> Path:
    target = Path(path).expanduser()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise ReportingError(f"Unable to write report to {target}: {exc}") from exc
    logger.info("Wrote report to %s", target)
    return target


__all__ = [
    "Reporter",
    "available_formats",
    "canonical_format",
    "get_reporter",
    "render_report",
    "write_report",
]
