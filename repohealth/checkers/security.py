"""Security checkers: hardcoded secrets and risky file permissions."""

from __future__ import annotations

import os
import re
import stat
from pathlib import Path
from typing import List, Pattern

from pydantic import Field, field_validator

from ..config import CheckerDefinition
from ..deadline import Deadline
from ..logging import get_logger
from ..models import Finding, Repository
from ..repo_scanner import RepoScanner
from .base import Checker, CheckerOptions

_BINARY_SNIFF_BYTES = 8192
_PLACEHOLDER_PREFIXES = ("${", "{{", "<", "%(", "$(")

_SCRIPT_EXTENSIONS = {
    ".sh",
    ".bash",
    ".zsh",
    ".fish",
    ".py",
    ".pl",
    ".rb",
    ".php",
    ".ps1",
    ".bat",
    ".cmd",
}


def compile_secret_pattern(keyword: str) -> Pattern[str]:
    """Match ``keyword`` used as a name that is assigned a quoted literal.

    ``password = "hunter22"``, ``"api_key": "abc123"`` and ``TOKEN := 'x1y2'``
    match; ``password = get_password()`` does not.
    """
    return re.compile(
        r"[\w.-]*(?:" + keyword + r")[\w.-]*[\"']?\s*(?::=|==|=|:)\s*[\"']([^\"'\s]{4,})[\"']",
        re.IGNORECASE,
    )


class SecretsOptions(CheckerOptions):
    patterns: List[str] = Field(default_factory=lambda: ["password", "api_key", "secret", "token"])
    exclude_files: List[str] = Field(default_factory=list)
    max_file_size: int = Field(default=1024 * 1024, ge=1)

    @field_validator("patterns")
    @classmethod
    def _patterns_compile(cls, value: List[str]) -> List[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid secret pattern {pattern!r}: {exc}") from exc
        return value


class SecretsChecker(Checker):
    """Finds credentials assigned to string literals in source files.

    Only the location and the matched keyword are reported, never the value.
    """

    checker_id = "security-secrets"
    options_model = SecretsOptions

    def __init__(self, scanner: RepoScanner | None = None) -> None:
        self._scanner = scanner or RepoScanner()
        self.logger = get_logger("checkers.security")

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: SecretsOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        compiled = [(keyword, compile_secret_pattern(keyword)) for keyword in options.patterns]
        exclusions = list(definition.exclusions) + list(options.exclude_files)

        findings: List[Finding] = []
        for rel_path in self._scanner.iter_files(root, exclusions, deadline=deadline):
            deadline.check(f"secret scan of {rel_path}")
            text = self._read_text(root / rel_path, options.max_file_size)
            if text is None:
                continue
            for line_no, line in enumerate(text.splitlines(), start=1):
                for keyword, pattern in compiled:
                    match = pattern.search(line)
                    if match is None or match.group(1).startswith(_PLACEHOLDER_PREFIXES):
                        continue
                    findings.append(
                        self.finding(
                            definition,
                            repository,
                            f"Possible hardcoded secret ('{keyword}') assigned to a literal",
                            path=rel_path,
                            line=line_no,
                            keyword=keyword,
                        )
                    )
                    break
        return findings

    def _read_text(self, path: Path, max_size: int) -> str | None:
        try:
            if path.stat().st_size > max_size:
                self.logger.debug("Skipping large file %s", path)
                return None
            data = path.read_bytes()
        except OSError as exc:
            self.logger.warning("Unable to read %s: %s", path, exc)
            return None
        if b"\0" in data[:_BINARY_SNIFF_BYTES]:
            return None
        return data.decode("utf-8", errors="replace")


class PermissionsOptions(CheckerOptions):
    check_executable: bool = True
    check_world_writable: bool = True


class PermissionsChecker(Checker):
    """Flags world-writable files and executable bits on non-script files."""

    checker_id = "security-permissions"
    options_model = PermissionsOptions

    def __init__(self, scanner: RepoScanner | None = None) -> None:
        self._scanner = scanner or RepoScanner()
        self.logger = get_logger("checkers.security")

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: PermissionsOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        if os.name == "nt":
            self.logger.debug("POSIX permission checks are not available on Windows")
            return []

        findings: List[Finding] = []
        for rel_path in self._scanner.iter_files(root, definition.exclusions, deadline=deadline):
            path = root / rel_path
            try:
                mode = path.lstat().st_mode
            except OSError as exc:
                self.logger.warning("Unable to stat %s: %s", rel_path, exc)
                continue
            if not stat.S_ISREG(mode):
                continue
            if options.check_world_writable and mode & stat.S_IWOTH:
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        "File is world-writable",
                        path=rel_path,
                        mode=oct(stat.S_IMODE(mode)),
                    )
                )
            executable = mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            if options.check_executable and executable and not _looks_like_script(path):
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        "Executable bit set on a non-script file",
                        path=rel_path,
                        mode=oct(stat.S_IMODE(mode)),
                    )
                )
        return findings


def _looks_like_script(path: Path) -> bool:
    if path.suffix.lower() in _SCRIPT_EXTENSIONS:
        return True
    try:
        with path.open("rb") as handle:
            head = handle.read(4)
    except OSError:
        return False
    # shebang scripts and native binaries are legitimately executable
    return head.startswith(b"#!") or head in (b"\x7fELF", b"\xcf\xfa\xed\xfe", b"MZ\x90\x00")


__all__ = ["PermissionsChecker", "SecretsChecker", "compile_secret_pattern"]
