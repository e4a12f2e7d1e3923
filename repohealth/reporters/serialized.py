"""JSON and YAML reporters built on :meth:`HealthReport.to_dict`."""

from __future__ import annotations

import json
from typing import Any, Mapping

import yaml

from ..models import HealthReport
from .base import Reporter


class JsonReporter(Reporter):
    name = "json"
    extension = "json"
    default_options = {"pretty_print": True, "include_metadata": True}

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        payload = report.to_dict(include_metadata=bool(settings["include_metadata"]))
        if settings["pretty_print"]:
            return json.dumps(payload, indent=2, default=str) + "\n"
        return json.dumps(payload, separators=(",", ":"), default=str) + "\n"


class YamlReporter(Reporter):
    name = "yaml"
    extension = "yaml"
    default_options = {"include_metadata": True}

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        payload = report.to_dict(include_metadata=bool(settings["include_metadata"]))
        # round-trip through JSON so metadata values are plain scalars
        plain = json.loads(json.dumps(payload, default=str))
        return yaml.safe_dump(plain, sort_keys=False, allow_unicode=True)


__all__ = ["JsonReporter", "YamlReporter"]
