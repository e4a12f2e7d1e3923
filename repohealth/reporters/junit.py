"""JUnit-style XML reporter for CI systems."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Mapping

from ..models import Finding, HealthReport
from .base import Reporter, location


class JUnitReporter(Reporter):
    """One ``testsuite`` per repository and one ``testcase`` per checker.

    Critical and warning findings become ``failure`` elements; informational
    findings are written to ``system-out`` so they do not fail a build.
    """

    name = "xml"
    extension = "xml"
    default_options = {"include_timestamps": True}

    def render(self, report: HealthReport, options: Mapping[str, Any] | None = None) -> str:
        settings = self.resolve_options(options)
        checkers: List[str] = list(report.metadata.get("checkers", []))
        root = ET.Element("testsuites", name="repohealth")
        total_tests = total_failures = 0

        for repo_name, findings in report.repositories.items():
            grouped: Dict[str, List[Finding]] = {checker_id: [] for checker_id in checkers}
            for finding in findings:
                grouped.setdefault(finding.checker_id, []).append(finding)

            suite = ET.SubElement(root, "testsuite", name=repo_name)
            if settings["include_timestamps"]:
                suite.set("timestamp", report.generated_at.isoformat())
            failures = 0
            for checker_id in sorted(grouped):
                case = ET.SubElement(suite, "testcase", classname=repo_name, name=checker_id)
                informational: List[str] = []
                for finding in grouped[checker_id]:
                    text = f"{location(finding.path, finding.line)}: {finding.message}"
                    if finding.severity.bucket == "info":
                        informational.append(f"[{finding.severity.value}] {text}")
                        continue
                    failure = ET.SubElement(
                        case, "failure", message=finding.message, type=finding.severity.value
                    )
                    failure.text = text
                    failures += 1
                if informational:
                    ET.SubElement(case, "system-out").text = "\n".join(informational)
            suite.set("tests", str(len(grouped)))
            suite.set("failures", str(failures))
            suite.set("errors", "0")
            total_tests += len(grouped)
            total_failures += failures

        root.set("tests", str(total_tests))
        root.set("failures", str(total_failures))
        if settings["include_timestamps"]:
            root.set("timestamp", report.generated_at.isoformat())
        ET.indent(root)
        return ET.tostring(root, encoding="unicode", xml_declaration=True) + "\n"


__all__ = ["JUnitReporter"]
