"""Multi-language cyclomatic complexity analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..deadline import Deadline
from ..logging import get_logger
from ..repo_scanner import RepoScanner, matches_any
from .base import AnalyzerDefinition, FunctionComplexity, LanguageScanner, ScanAnomaly
from .languages import available_languages, get_scanner

DEFAULT_THRESHOLD = 10
FILE_LEVEL_NAME = "<file>"


@dataclass
class ComplexityReport:
    """Measured functions for a repository plus files skipped with a warning."""

    functions: List[FunctionComplexity] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    files_analyzed: int = 0

    @property
    def violations(self) -> List[FunctionComplexity]:
        return [item for item in self.functions if item.exceeds_threshold]


class ComplexityAnalyzer:
    """Computes per-function decision-point counts and compares them to thresholds.

    Each enabled :class:`AnalyzerDefinition` maps file extensions to a language
    scanner. Thresholds resolve in order: explicit ``thresholds`` override for
    the language, the definition's ``complexity_threshold``, ``default_threshold``.
    """

    def __init__(
        self,
        definitions: Iterable[AnalyzerDefinition],
        *,
        scanners: Mapping[str, LanguageScanner] | None = None,
        thresholds: Mapping[str, int] | None = None,
        default_threshold: int = DEFAULT_THRESHOLD,
        exclusions: Sequence[str] = (),
        repo_scanner: RepoScanner | None = None,
    ) -> None:
        self.logger = get_logger("analyzers.complexity")
        self.default_threshold = default_threshold
        self.exclusions = tuple(exclusions)
        self._thresholds = dict(thresholds or {})
        self._repo_scanner = repo_scanner or RepoScanner()
        self._definitions: Dict[str, AnalyzerDefinition] = {}
        self._scanners: Dict[str, LanguageScanner] = {}
        self._by_extension: Dict[str, str] = {}
        for definition in definitions:
            if not definition.enabled:
                continue
            scanner = (scanners or {}).get(definition.language) or get_scanner(definition.language)
            if scanner is None:
                self.logger.warning(
                    "No complexity scanner for language '%s' (available: %s); skipping",
                    definition.language,
                    ", ".join(available_languages()),
                )
                continue
            self._definitions[definition.language] = definition
            self._scanners[definition.language] = scanner
            for extension in definition.file_extensions:
                self._by_extension.setdefault(extension.lower(), definition.language)

    @property
    def languages(self) -> List[str]:
        return sorted(self._definitions)

    def threshold_for(self, language: str) -> int:
        if language in self._thresholds:
            return int(self._thresholds[language])
        definition = self._definitions.get(language)
        if definition is not None and definition.complexity_threshold is not None:
            return definition.complexity_threshold
        return self.default_threshold

    def definition_for(self, rel_path: str) -> Optional[AnalyzerDefinition]:
        name = rel_path.rsplit("/", 1)[-1].lower()
        for extension, language in self._by_extension.items():
            if name.endswith(extension):
                return self._definitions[language]
        return None

    def is_excluded(self, rel_path: str, definition: AnalyzerDefinition) -> bool:
        patterns = list(definition.exclude_patterns) + list(self.exclusions)
        return matches_any(rel_path, patterns)

    def analyze_source(self, language: str, source: str, *, path: str = "") -> List[FunctionComplexity]:
        """Measure ``source`` for ``language``; raises :class:`ScanAnomaly` on unscannable input."""
        scanner = self._scanners.get(language)
        if scanner is None:
            raise KeyError(f"Language not enabled for complexity analysis: {language}")
        threshold = self.threshold_for(language)
        if not source.strip():
            return []
        definition = self._definitions[language]
        if not definition.function_level:
            return [
                FunctionComplexity(
                    name=FILE_LEVEL_NAME,
                    line=1,
                    complexity=scanner.file_complexity(source),
                    path=path,
                    language=language,
                    threshold=threshold,
                )
            ]
        return [
            FunctionComplexity(
                name=item.name,
                line=item.line,
                complexity=item.complexity,
                path=path,
                language=language,
                threshold=threshold,
            )
            for item in scanner.scan(source)
        ]

    def analyze_repository(self, root: str | Path, *, deadline: Deadline | None = None) -> ComplexityReport:
        root_path = Path(root)
        report = ComplexityReport()
        for rel_path in self._repo_scanner.iter_files(root_path, deadline=deadline):
            definition = self.definition_for(rel_path)
            if definition is None or self.is_excluded(rel_path, definition):
                continue
            if deadline is not None:
                deadline.check(f"complexity analysis of {rel_path}")
            try:
                source = (root_path / rel_path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                self.logger.warning("Skipping unreadable file %s: %s", rel_path, exc)
                report.skipped.append((rel_path, str(exc)))
                continue
            try:
                functions = self.analyze_source(definition.language, source, path=rel_path)
            except ScanAnomaly as exc:
                self.logger.warning("Low-confidence scan of %s skipped: %s", rel_path, exc)
                report.skipped.append((rel_path, str(exc)))
                continue
            report.files_analyzed += 1
            report.functions.extend(functions)
        report.functions.sort(key=FunctionComplexity.sort_key)
        return report


__all__ = ["ComplexityAnalyzer", "ComplexityReport", "DEFAULT_THRESHOLD", "FILE_LEVEL_NAME"]
