"""Documentation checkers: README sections and Python API docstrings."""

from __future__ import annotations

import ast
import re
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from pydantic import Field

from ..config import CheckerDefinition
from ..deadline import Deadline
from ..logging import get_logger
from ..models import Finding, Repository
from ..repo_scanner import RepoScanner
from .base import Checker, CheckerOptions

_README_NAMES = ("readme.md", "readme.rst", "readme.txt", "readme.markdown", "readme")
_MARKDOWN_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$")
_UNDERLINE = re.compile(r"^\s*(=+|-+|~+|\^+)\s*$")


def find_readme(root: Path) -> Optional[Path]:
    candidates = {entry.name.lower(): entry for entry in root.iterdir() if entry.is_file()}
    for name in _README_NAMES:
        if name in candidates:
            return candidates[name]
    return None


def extract_headings(text: str) -> List[str]:
    """Return ATX (``# Title``) and underlined (Setext/reST) headings in order."""
    headings: List[str] = []
    lines = text.splitlines()
    for index, line in enumerate(lines):
        match = _MARKDOWN_HEADING.match(line)
        if match:
            headings.append(match.group(1).strip())
            continue
        following = lines[index + 1] if index + 1 < len(lines) else ""
        if line.strip() and _UNDERLINE.match(following) and len(following.strip()) >= len(line.strip()) // 2:
            headings.append(line.strip())
    return headings


class ReadmeOptions(CheckerOptions):
    required_sections: List[str] = Field(default_factory=lambda: ["Installation", "Usage"])


class ReadmeChecker(Checker):
    """Requires a README containing each configured section heading."""

    checker_id = "documentation-readme"
    options_model = ReadmeOptions

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: ReadmeOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        readme = find_readme(root)
        if readme is None:
            return [self.finding(definition, repository, "No README file found")]

        text = readme.read_text(encoding="utf-8", errors="replace")
        headings = [heading.lower() for heading in extract_headings(text)]
        findings: List[Finding] = []
        for section in options.required_sections:
            wanted = section.lower()
            if any(wanted in heading for heading in headings):
                continue
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"README is missing a '{section}' section",
                    path=readme.name,
                    section=section,
                )
            )
        return findings


class ApiDocsOptions(CheckerOptions):
    check_function_docs: bool = True
    check_class_docs: bool = True


class ApiDocsChecker(Checker):
    """Flags public Python functions and classes without docstrings."""

    checker_id = "documentation-api"
    options_model = ApiDocsOptions

    def __init__(self, scanner: RepoScanner | None = None) -> None:
        self._scanner = scanner or RepoScanner()
        self.logger = get_logger("checkers.documentation")

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: ApiDocsOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        findings: List[Finding] = []
        for rel_path in self._scanner.iter_files(root, definition.exclusions, deadline=deadline):
            if not rel_path.endswith(".py"):
                continue
            try:
                tree = ast.parse((root / rel_path).read_text(encoding="utf-8"), filename=rel_path)
            except (OSError, SyntaxError, UnicodeDecodeError, ValueError) as exc:
                self.logger.warning("Skipping %s: %s", rel_path, exc)
                continue
            for kind, name, node in _public_definitions(tree):
                if kind == "class" and not options.check_class_docs:
                    continue
                if kind != "class" and not options.check_function_docs:
                    continue
                if ast.get_docstring(node) is not None:
                    continue
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        f"Public {kind} '{name}' has no docstring",
                        path=rel_path,
                        line=node.lineno,
                        symbol=name,
                    )
                )
        return findings


def _public_definitions(tree: ast.Module) -> Iterator[Tuple[str, str, ast.AST]]:
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and not node.name.startswith("_"):
            yield "function", node.name, node
        elif isinstance(node, ast.ClassDef) and not node.name.startswith("_"):
            yield "class", node.name, node
            for child in node.body:
                if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)) and not child.name.startswith("_"):
                    yield "method", f"{node.name}.{child.name}", child


__all__ = ["ApiDocsChecker", "ReadmeChecker", "extract_headings", "find_readme"]
