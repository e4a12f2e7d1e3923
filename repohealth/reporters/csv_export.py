"""CSV reporter emitting one row per finding."""

from __future__ import annotations

import csv
import io
from typing import Any, Mapping

from ..errors import ReportingError
from ..models import HealthReport
from .base import Reporter

COLUMNS = (
    "repository",
    "checker_id",
    "category",
    "severity",
    "path",
    "line",
    "metric",
    "threshold",
    "message",
)


class CsvReporter(Reporter):
    name = "csv"
    extension = "csv"
    default_options = {"include_headers": True, "delimiter": ","}

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        delimiter = str(settings["delimiter"])
        if len(delimiter) != 1:
            raise ReportingError(f"CSV delimiter must be a single character, got {delimiter!r}")
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
        if settings["include_headers"]:
            writer.writerow(COLUMNS)
        for finding in report.findings():
            row = finding.to_dict()
            writer.writerow(["" if row[column] is None else row[column] for column in COLUMNS])
        return buffer.getvalue()


__all__ = ["COLUMNS", "CsvReporter"]
