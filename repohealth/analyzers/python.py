"""Indentation-aware lexical complexity scanner for Python sources."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Pattern, Sequence

from .base import FunctionComplexity, LanguageScanner, ScanAnomaly

_DEF = re.compile(r"^[ \t]*(?:async[ \t]+)?def[ \t]+(?P<name>[A-Za-z_]\w*)")
_STRING_PREFIX = re.compile(r"(?i)(?<![\w])(?:rb|br|fr|rf|r|b|f|u)?(?P<quote>'''|\"\"\"|'|\")")
_ELSE = re.compile(r"else\b")
_OPENERS = "([{"
_CLOSERS = ")]}"

_DECISIONS = (
    re.compile(r"\bif\b"),
    re.compile(r"\belif\b"),
    re.compile(r"\bfor\b"),
    re.compile(r"\bwhile\b"),
    re.compile(r"\bexcept\b"),
    re.compile(r"\band\b"),
    re.compile(r"\bor\b"),
    re.compile(r"^[ \t]*case\b(?![ \t]*=[^=])(?=.*:)", re.MULTILINE),
)


@dataclass
class _LogicalLine:
    start: int
    indent: int
    text: str


@dataclass
class _Function:
    name: str
    line: int
    indent: int
    points: int = 0


class PythonScanner(LanguageScanner):
    """Scores ``def`` blocks by indentation; nested defs are scored on their own."""

    language = "python"

    @property
    def decision_patterns(self) -> Sequence[Pattern[str]]:
        return _DECISIONS

    def strip(self, source: str) -> str:
        return _blank_python(source)

    def decision_points(self, text: str, start: int = 0, end: int | None = None) -> List[int]:
        # ``a if c else b`` is a conditional expression, not a branch.
        return [
            position
            for position in super().decision_points(text, start, end)
            if not (text.startswith("if", position) and _is_conditional_expression(text, position))
        ]

    def scan(self, source: str) -> List[FunctionComplexity]:
        text = self.strip(source)
        if not text.strip():
            return []

        functions: List[_Function] = []
        stack: List[_Function] = []
        for logical in _logical_lines(text):
            while stack and logical.indent <= stack[-1].indent:
                stack.pop()
            header = _DEF.match(logical.text)
            if header:
                function = _Function(name=header.group("name"), line=logical.start + 1, indent=logical.indent)
                function.points = len(self.decision_points(_header_tail(logical.text, header.end())))
                functions.append(function)
                stack.append(function)
                continue
            if stack:
                stack[-1].points += len(self.decision_points(logical.text))

        return [
            FunctionComplexity(
                name=function.name,
                line=function.line,
                complexity=1 + function.points,
                language=self.language,
            )
            for function in functions
        ]


def _logical_lines(text: str) -> List[_LogicalLine]:
    """Join bracket and backslash continuations into logical lines."""
    result: List[_LogicalLine] = []
    buffer: List[str] = []
    start = 0
    indent = 0
    depth = 0
    for number, raw in enumerate(text.split("\n")):
        line = raw.expandtabs(8)
        if not buffer:
            if not line.strip():
                continue
            start = number
            indent = len(line) - len(line.lstrip(" "))
        buffer.append(line)
        for char in line:
            if char in _OPENERS:
                depth += 1
            elif char in _CLOSERS:
                depth -= 1
                if depth < 0:
                    raise ScanAnomaly(f"unbalanced '{char}' on line {number + 1}")
        if depth == 0 and not line.rstrip().endswith("\\"):
            result.append(_LogicalLine(start=start, indent=indent, text="\n".join(buffer)))
            buffer = []
    if buffer:
        if depth > 0:
            raise ScanAnomaly(f"unclosed bracket opened near line {start + 1}")
        result.append(_LogicalLine(start=start, indent=indent, text="\n".join(buffer)))
    return result


def _is_conditional_expression(text: str, position: int) -> bool:
    """Return True when the ``if`` at ``position`` has an ``else`` at its own bracket depth."""
    depth = 0
    index = position + 2
    length = len(text)
    while index < length:
        char = text[index]
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
            if depth < 0:
                return False
        elif depth == 0:
            if char == ";" or (char == ":" and not text.startswith(":=", index)):
                return False
            if _ELSE.match(text, index) and not _is_ident(text, index - 1):
                return True
        index += 1
    return False


def _is_ident(text: str, index: int) -> bool:
    return index >= 0 and (text[index].isalnum() or text[index] == "_")


def _header_tail(text: str, position: int) -> str:
    """Return what follows the parameter list of a ``def`` header (annotation + inline body)."""
    depth = 0
    started = False
    for index in range(position, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
            started = True
        elif char == ")":
            depth -= 1
            if started and depth == 0:
                return text[index + 1 :]
    return ""


def _blank_python(source: str) -> str:
    """Replace comments and string literals with spaces, keeping newlines."""
    out = list(source)
    length = len(source)
    index = 0

    def blank(start: int, end: int) -> None:
        for pos in range(start, min(end, length)):
            if out[pos] != "\n":
                out[pos] = " "

    while index < length:
        char = source[index]
        if char == "#":
            end = source.find("\n", index)
            end = length if end == -1 else end
            blank(index, end)
            index = end
            continue
        if char in "'\"rRbBfFuU":
            literal = _STRING_PREFIX.match(source, index)
            if literal is None:
                index += 1
                continue
            quote = literal.group("quote")
            end = _find_string_end(source, literal.end(), quote)
            if end == -1:
                raise ScanAnomaly("unterminated triple-quoted string")
            blank(index, end)
            index = end
            continue
        index += 1
    return "".join(out)


def _find_string_end(source: str, start: int, quote: str) -> int:
    index = start
    length = len(source)
    triple = len(quote) == 3
    while index < length:
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if source.startswith(quote, index):
            return index + len(quote)
        if char == "\n" and not triple:
            # Best effort: an unterminated single-line string ends at the newline.
            return index
        index += 1
    return length if not triple else -1


__all__ = ["PythonScanner"]
