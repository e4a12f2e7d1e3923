"""Lexical complexity analysis for multiple languages."""

from __future__ import annotations

from .base import AnalyzerDefinition, FunctionComplexity, LanguageScanner, ScanAnomaly
from .brace import BraceScanner
from .complexity import ComplexityAnalyzer, ComplexityReport
from .languages import available_languages, get_scanner
from .python import PythonScanner

__all__ = [
    "AnalyzerDefinition",
    "BraceScanner",
    "ComplexityAnalyzer",
    "ComplexityReport",
    "FunctionComplexity",
    "LanguageScanner",
    "PythonScanner",
    "ScanAnomaly",
    "available_languages",
    "get_scanner",
]
