"""Base classes for language complexity scanners."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple


class ScanAnomaly(ValueError):
    """Raised when a file cannot be scanned with confidence (unterminated block, ...)."""


@dataclass(frozen=True)
class AnalyzerDefinition:
    """Per-language complexity analyzer settings."""

    language: str
    file_extensions: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()
    complexity_threshold: Optional[int] = None
    function_level: bool = True
    enabled: bool = True


@dataclass(frozen=True)
class FunctionComplexity:
    """Measured complexity of one function (or one file when aggregated)."""

    name: str
    line: int
    complexity: int
    path: str = ""
    language: str = ""
    threshold: Optional[int] = None

    @property
    def exceeds_threshold(self) -> bool:
        return self.threshold is not None and self.complexity > self.threshold

    def sort_key(self) -> Tuple[int, str, int]:
        return (-self.complexity, self.path, self.line)


class LanguageScanner(ABC):
    """Contract for lexical scanners that measure per-function complexity."""

    language: str = ""

    @abstractmethod
    def strip(self, source: str) -> str:
        """Blank comments and string literals, preserving offsets and newlines."""

    @abstractmethod
    def scan(self, source: str) -> List[FunctionComplexity]:
        """Return ``(name, line, complexity)`` entries for every function in ``source``."""

    @property
    @abstractmethod
    def decision_patterns(self) -> Sequence[Pattern[str]]:
        """Regular expressions whose matches are decision points."""

    def file_complexity(self, source: str) -> int:
        """Aggregate complexity of a whole file: 1 + every decision point in it."""
        return 1 + len(self.decision_points(self.strip(source)))

    def decision_points(self, text: str, start: int = 0, end: int | None = None) -> List[int]:
        stop = len(text) if end is None else end
        positions: List[int] = []
        for pattern in self.decision_patterns:
            positions.extend(match.start() for match in pattern.finditer(text, start, stop))
        positions.sort()
        return positions


class LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, text: str) -> None:
        self._newlines = [match.start() for match in re.finditer("\n", text)]

    def line_of(self, offset: int) -> int:
        return bisect_right(self._newlines, offset - 1) + 1


__all__ = [
    "AnalyzerDefinition",
    "FunctionComplexity",
    "LanguageScanner",
    "LineIndex",
    "ScanAnomaly",
]
