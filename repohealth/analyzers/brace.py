"""Lexical complexity scanner for brace-delimited languages (Java, JS/TS, Go, C#, Rust)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Sequence, Tuple

from .base import FunctionComplexity, LanguageScanner, LineIndex, ScanAnomaly

_PARAMS = r"\((?P<params>[^()]*(?:\([^()]*\)[^()]*)*)\)"

_NOT_FUNCTION_NAMES = frozenset(
    {
        "if",
        "else",
        "for",
        "foreach",
        "while",
        "do",
        "switch",
        "case",
        "catch",
        "try",
        "finally",
        "return",
        "throw",
        "function",
        "using",
        "lock",
        "fixed",
        "synchronized",
        "new",
        "typeof",
        "sizeof",
        "nameof",
        "with",
        "await",
        "yield",
        "match",
        "loop",
        "select",
        "go",
        "defer",
        "when",
        "base",
        "this",
        "super",
    }
)

_RUST_CHAR = re.compile(r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]+\}|.)|[^\\'\n])'")
_RUST_RAW = re.compile(r'r(#*)"')
_NEW_BEFORE = re.compile(r"\bnew\s*$")

_COMMON_DECISIONS = (
    re.compile(r"\bif\b"),
    re.compile(r"\bfor\b"),
    re.compile(r"\bwhile\b"),
    re.compile(r"\bcase\b"),
    re.compile(r"\bcatch\b"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
)


@dataclass(frozen=True)
class BraceLanguage:
    """Lexical conventions of one brace-delimited language."""

    name: str
    headers: Tuple[Pattern[str], ...]
    decisions: Tuple[Pattern[str], ...] = _COMMON_DECISIONS
    char_literals: bool = True
    quote_strings: str = '"'
    multiline_quotes: str = ""
    verbatim_strings: bool = False
    rust_literals: bool = False
    aliases: Tuple[str, ...] = field(default_factory=tuple)


@dataclass
class _Span:
    name: str
    offset: int
    open: int
    close: int
    points: int = 0


class BraceScanner(LanguageScanner):
    """Finds functions by header pattern + matching braces and counts decision points."""

    def __init__(self, spec: BraceLanguage) -> None:
        self.spec = spec
        self.language = spec.name

    @property
    def decision_patterns(self) -> Sequence[Pattern[str]]:
        return self.spec.decisions

    def strip(self, source: str) -> str:
        return _blank_literals(source, self.spec)

    def scan(self, source: str) -> List[FunctionComplexity]:
        text = self.strip(source)
        if not text.strip():
            return []
        pairs = _match_braces(text)
        spans = self._find_functions(text, pairs)
        if not spans:
            return []

        ordered = sorted(spans, key=lambda span: span.open)
        stack: List[_Span] = []
        index = 0
        for position in self.decision_points(text):
            while index < len(ordered) and ordered[index].open < position:
                candidate = ordered[index]
                while stack and stack[-1].close < candidate.open:
                    stack.pop()
                stack.append(candidate)
                index += 1
            while stack and stack[-1].close < position:
                stack.pop()
            if stack:
                stack[-1].points += 1

        lines = LineIndex(text)
        return [
            FunctionComplexity(
                name=span.name,
                line=lines.line_of(span.offset),
                complexity=1 + span.points,
                language=self.language,
            )
            for span in ordered
        ]

    def _find_functions(self, text: str, pairs: Dict[int, int]) -> List[_Span]:
        spans: Dict[int, _Span] = {}
        for header in self.spec.headers:
            for match in header.finditer(text):
                open_index = match.end() - 1
                if open_index in spans or text[open_index] != "{":
                    continue
                name = match.groupdict().get("name")
                if name in _NOT_FUNCTION_NAMES:
                    continue
                if name and _NEW_BEFORE.search(text, 0, match.start("name")):
                    # Anonymous class body (``new Foo() {``), not a function.
                    continue
                close_index = pairs.get(open_index)
                if close_index is None:
                    continue
                offset = match.start("name") if name else match.start()
                spans[open_index] = _Span(
                    name=name or "<anonymous>",
                    offset=offset,
                    open=open_index,
                    close=close_index,
                )
        return list(spans.values())


def _match_braces(text: str) -> Dict[int, int]:
    pairs: Dict[int, int] = {}
    stack: List[int] = []
    for index, char in enumerate(text):
        if char == "{":
            stack.append(index)
        elif char == "}":
            if not stack:
                raise ScanAnomaly(f"unbalanced '}}' at offset {index}")
            pairs[stack.pop()] = index
    if stack:
        raise ScanAnomaly(f"{len(stack)} unterminated block(s)")
    return pairs


def _blank_literals(source: str, spec: BraceLanguage) -> str:
    """Replace comments and string/char literals with spaces, keeping newlines."""
    out = list(source)
    length = len(source)
    index = 0

    def blank(start: int, end: int) -> None:
        for pos in range(start, min(end, length)):
            if out[pos] != "\n":
                out[pos] = " "

    while index < length:
        char = source[index]
        nxt = source[index + 1] if index + 1 < length else ""

        if char == "/" and nxt == "/":
            end = source.find("\n", index)
            end = length if end == -1 else end
            blank(index, end)
            index = end
            continue

        if char == "/" and nxt == "*":
            end = source.find("*/", index + 2)
            if end == -1:
                raise ScanAnomaly("unterminated block comment")
            blank(index, end + 2)
            index = end + 2
            continue

        if spec.rust_literals and char == "r" and not _is_ident(source, index - 1):
            raw = _RUST_RAW.match(source, index)
            if raw:
                terminator = '"' + raw.group(1)
                end = source.find(terminator, raw.end())
                if end == -1:
                    raise ScanAnomaly("unterminated raw string")
                blank(index, end + len(terminator))
                index = end + len(terminator)
                continue

        if spec.verbatim_strings and char == "@" and nxt == '"':
            end = index + 2
            while True:
                end = source.find('"', end)
                if end == -1:
                    raise ScanAnomaly("unterminated verbatim string")
                if source.startswith('""', end):
                    end += 2
                    continue
                break
            blank(index, end + 1)
            index = end + 1
            continue

        if char in spec.multiline_quotes:
            end = _find_closing(source, index + 1, char, allow_newline=True, escapes=char != "`" or spec.name != "go")
            if end == -1:
                raise ScanAnomaly(f"unterminated {char} string")
            blank(index, end + 1)
            index = end + 1
            continue

        if char in spec.quote_strings:
            end = _find_closing(source, index + 1, char, allow_newline=False)
            if end == -1:
                raise ScanAnomaly(f"unterminated {char} string")
            blank(index, end + 1)
            index = end + 1
            continue

        if char == "'" and spec.char_literals:
            if spec.rust_literals:
                literal = _RUST_CHAR.match(source, index)
                if literal:
                    blank(index, literal.end())
                    index = literal.end()
                else:
                    index += 1  # lifetime or label
                continue
            end = _find_closing(source, index + 1, "'", allow_newline=False)
            if end == -1:
                raise ScanAnomaly("unterminated character literal")
            blank(index, end + 1)
            index = end + 1
            continue

        index += 1

    return "".join(out)


def _find_closing(
    source: str, start: int, quote: str, *, allow_newline: bool, escapes: bool = True
) -> int:
    index = start
    length = len(source)
    while index < length:
        char = source[index]
        if escapes and char == "\\":
            index += 2
            continue
        if char == quote:
            return index
        if char == "\n" and not allow_newline:
            # Best effort: an unterminated single-line literal ends at the newline.
            return index - 1 if index > start else start - 1
        index += 1
    return -1


def _is_ident(source: str, index: int) -> bool:
    return index >= 0 and (source[index].isalnum() or source[index] == "_")


_JAVA_HEADER = re.compile(
    r"(?P<name>[A-Za-z_$][\w$]*)\s*" + _PARAMS + r"\s*(?:throws\s+[\w.,\s]+?)?\s*\{"
)
_CSHARP_HEADER = re.compile(
    r"(?P<name>[A-Za-z_]\w*)\s*(?:<[^<>(){};]*>)?\s*"
    + _PARAMS
    + r"\s*(?::\s*(?:base|this)\s*\([^()]*\))?\s*(?:where\s+[^{;]+?)?\s*\{"
)
_JAVA_LAMBDA = re.compile(r"(?<![\w$])(?:\([^()]*\)|[A-Za-z_$][\w$]*)\s*->\s*\{")
_CSHARP_LAMBDA = re.compile(r"(?<!\w)(?:\([^()]*\)|[A-Za-z_]\w*)\s*=>\s*\{")
_JS_FUNCTION = re.compile(
    r"\bfunction\b\s*\*?\s*(?P<name>[A-Za-z_$][\w$]*)?\s*(?:<[^<>(){}]*>)?\s*"
    + _PARAMS
    + r"\s*(?::\s*[^{;=]+?)?\s*\{"
)
_JS_ARROW = re.compile(
    r"(?:(?P<name>[A-Za-z_$][\w$]*)\s*[=:]\s*)?(?:async\s+)?"
    r"(?:\([^()]*(?:\([^()]*\)[^()]*)*\)|[A-Za-z_$][\w$]*)\s*(?::\s*[\w<>\[\]|.,\s]+?)?\s*=>\s*\{"
)
_JS_METHOD = re.compile(
    r"^[ \t]*(?:(?:public|private|protected|static|async|readonly|override|abstract|get|set)\s+)*"
    r"\*?(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^<>(){}]*>)?\s*"
    + _PARAMS
    + r"\s*(?::\s*[^{;=]+?)?\s*\{",
    re.MULTILINE,
)
_GO_FUNC = re.compile(
    r"\bfunc\b\s*(?:\([^()]*\)\s*)?(?P<name>[A-Za-z_]\w*)?\s*(?:\[[^\]]*\])?\s*"
    + _PARAMS
    + r"(?:interface\s*\{\s*\}|struct\s*\{\s*\}|[^{;\n])*\{"
)
_RUST_FN = re.compile(
    r"\bfn\s+(?P<name>[A-Za-z_]\w*)\s*(?:<[^{;]*?>)?\s*" + _PARAMS + r"[^{;]*\{"
)

_NULLISH = re.compile(r"\?\?")

LANGUAGES: Dict[str, BraceLanguage] = {
    "java": BraceLanguage(name="java", headers=(_JAVA_HEADER, _JAVA_LAMBDA)),
    "csharp": BraceLanguage(
        name="csharp",
        headers=(_CSHARP_HEADER, _CSHARP_LAMBDA),
        decisions=_COMMON_DECISIONS + (re.compile(r"\bforeach\b"), _NULLISH),
        verbatim_strings=True,
        aliases=("c#", "cs"),
    ),
    "javascript": BraceLanguage(
        name="javascript",
        headers=(_JS_FUNCTION, _JS_ARROW, _JS_METHOD),
        decisions=_COMMON_DECISIONS + (_NULLISH,),
        char_literals=False,
        quote_strings="\"'",
        multiline_quotes="`",
        aliases=("js",),
    ),
    "typescript": BraceLanguage(
        name="typescript",
        headers=(_JS_FUNCTION, _JS_ARROW, _JS_METHOD),
        decisions=_COMMON_DECISIONS + (_NULLISH,),
        char_literals=False,
        quote_strings="\"'",
        multiline_quotes="`",
        aliases=("ts",),
    ),
    "go": BraceLanguage(
        name="go",
        headers=(_GO_FUNC,),
        decisions=(
            re.compile(r"\bif\b"),
            re.compile(r"\bfor\b"),
            re.compile(r"\bcase\b"),
            re.compile(r"&&"),
            re.compile(r"\|\|"),
        ),
        multiline_quotes="`",
        aliases=("golang",),
    ),
    "rust": BraceLanguage(
        name="rust",
        headers=(_RUST_FN,),
        decisions=(
            re.compile(r"\bif\b"),
            re.compile(r"\bfor\b"),
            re.compile(r"\bwhile\b"),
            re.compile(r"=>"),
            re.compile(r"&&"),
            # ``||`` opening an argument-less closure is not a boolean operator.
            re.compile(r"(?<![(,=])(?<!move )(?<![(,=] )\|\|(?!\s*\{)"),
        ),
        rust_literals=True,
        aliases=("rs",),
    ),
}


__all__ = ["BraceLanguage", "BraceScanner", "LANGUAGES"]
