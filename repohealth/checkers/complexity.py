"""Cyclomatic complexity checker backed by the lexical complexity analyzer."""

from __future__ import annotations

from typing import Dict, List, Mapping

from pydantic import Field

from ..analyzers import AnalyzerDefinition, ComplexityAnalyzer
from ..analyzers.complexity import DEFAULT_THRESHOLD, FILE_LEVEL_NAME
from ..config import CheckerDefinition, load_default_config
from ..deadline import Deadline
from ..logging import get_logger
from ..models import Finding, Repository, Severity
from .base import Checker, CheckerOptions

TEST_FILE_PATTERNS = (
    "test_*.py",
    "*_test.py",
    "*_test.go",
    "*.spec.js",
    "*.test.js",
    "*.spec.ts",
    "*.test.ts",
    "*Test.java",
    "*Tests.cs",
)


class ComplexityOptions(CheckerOptions):
    default_threshold: int = Field(default=DEFAULT_THRESHOLD, ge=1)
    detailed_report: bool = False
    thresholds: Dict[str, int] = Field(default_factory=dict)
    include_tests: bool = False


class ComplexityChecker(Checker):
    """Reports functions whose complexity exceeds their language threshold."""

    checker_id = "cyclomatic-complexity"
    options_model = ComplexityOptions

    def __init__(self, analyzers: Mapping[str, AnalyzerDefinition] | None = None) -> None:
        if analyzers is None:
            analyzers = load_default_config().analyzers
        self._analyzers = dict(analyzers)
        self.logger = get_logger("checkers.complexity")

    def cache_token(self, repository: Repository) -> str:
        return repr(sorted(self._analyzers.items()))

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: ComplexityOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        if options.include_tests:
            exclusions = [item for item in definition.exclusions if item not in TEST_FILE_PATTERNS]
        else:
            exclusions = list(definition.exclusions) + list(TEST_FILE_PATTERNS)

        analyzer = ComplexityAnalyzer(
            self._analyzers.values(),
            thresholds=options.thresholds,
            default_threshold=options.default_threshold,
            exclusions=exclusions,
        )
        report = analyzer.analyze_repository(root, deadline=deadline)
        self.logger.debug(
            "%s: analyzed %d files, %d functions, %d skipped",
            repository.name,
            report.files_analyzed,
            len(report.functions),
            len(report.skipped),
        )

        findings: List[Finding] = []
        for item in report.functions:
            exceeds = item.exceeds_threshold
            if not exceeds and not options.detailed_report:
                continue
            subject = "File" if item.name == FILE_LEVEL_NAME else f"Function '{item.name}'"
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"{subject} has cyclomatic complexity {item.complexity} (threshold {item.threshold})",
                    severity=None if exceeds else Severity.INFO,
                    path=item.path,
                    line=item.line,
                    metric=item.complexity,
                    threshold=item.threshold,
                    function=item.name,
                    language=item.language,
                )
            )
        return findings


__all__ = ["ComplexityChecker", "ComplexityOptions", "TEST_FILE_PATTERNS"]
