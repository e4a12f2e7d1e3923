"""Repository walking, exclusion matching and content fingerprinting."""

from __future__ import annotations

import hashlib
import os
import threading
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .deadline import Deadline

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
    ".idea",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}


@dataclass(frozen=True)
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or an exclusion glob."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False

        target = rel_path
        if self.directory_only and not is_dir:
            # A file matches ``dir/`` when any parent directory does.
            parents = target.split("/")[:-1]
            return any(
                self._matches_dir("/".join(parents[: index + 1]), parents[index])
                for index in range(len(parents))
            )
        if self.anchored or self.has_slash:
            return fnmatchcase(target, self.pattern)

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False

    def _matches_dir(self, rel_dir: str, name: str) -> bool:
        if self.anchored or self.has_slash:
            return fnmatchcase(rel_dir, self.pattern)
        return fnmatchcase(name, self.pattern)


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip().replace("\\", "/")
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern.rstrip("/")

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern.lstrip("/")

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
    )


def compile_rules(patterns: Iterable[str]) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    for pattern in patterns:
        negate = pattern.startswith("!")
        rule = build_ignore_rule(pattern[1:] if negate else pattern, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def matches_any(rel_path: str, patterns: Sequence[str], *, is_dir: bool = False) -> bool:
    """Return True when ``rel_path`` is excluded by any of the glob ``patterns``."""
    return should_ignore(rel_path.replace("\\", "/"), is_dir, compile_rules(patterns))


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return []
    return compile_rules(
        line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")
    )


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class RepoScanner:
    """Walks a repository honoring .gitignore and exclusion globs."""

    def __init__(self) -> None:
        self._hashes: Dict[str, Tuple[int, int, str]] = {}
        self._lock = threading.Lock()

    def iter_files(
        self,
        root: str | Path,
        exclusions: Sequence[str] = (),
        *,
        respect_gitignore: bool = True,
        deadline: Deadline | None = None,
    ) -> Iterator[str]:
        """Yield POSIX-style paths relative to ``root`` for every included file."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {root}")

        rules: List[IgnoreRule] = []
        if respect_gitignore:
            rules.extend(_parse_gitignore(root_path / ".gitignore"))
        rules.extend(compile_rules(exclusions))

        for dirpath, dirnames, filenames in os.walk(root_path):
            if deadline is not None:
                deadline.check(f"scanning {root_path.name}")
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root_path).as_posix() if current_dir != root_path else ""

            kept = []
            for name in sorted(dirnames):
                if name in _EXCLUDED_DIRS:
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if should_ignore(rel_path, True, rules):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for filename in sorted(filenames):
                if filename in _EXCLUDED_FILES:
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if should_ignore(rel_path, False, rules):
                    continue
                yield rel_path

    def fingerprint(self, root: str | Path, *, deadline: Deadline | None = None) -> str:
        """Return a digest of the repository's file contents and git state.

        Raises :class:`~repohealth.errors.CheckTimeoutError` once ``deadline`` passes.
        """
        root_path = Path(root).expanduser().resolve()
        digest = hashlib.sha256()
        count = 0
        for rel_path in self.iter_files(root_path, respect_gitignore=False, deadline=deadline):
            if deadline is not None:
                deadline.check(f"fingerprinting {root_path.name}")
            file_path = root_path / rel_path
            try:
                file_hash = self._cached_hash(file_path)
            except OSError:
                continue
            digest.update(rel_path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(file_hash.encode("utf-8"))
            digest.update(b"\0")
            count += 1
        digest.update(str(count).encode("utf-8"))
        digest.update(_git_state(root_path).encode("utf-8"))
        return digest.hexdigest()

    def _cached_hash(self, path: Path) -> str:
        stat_result = path.stat()
        key = str(path)
        with self._lock:
            cached = self._hashes.get(key)
        if cached and cached[0] == stat_result.st_size and cached[1] == stat_result.st_mtime_ns:
            return cached[2]
        file_hash = _hash_file(path)
        with self._lock:
            self._hashes[key] = (stat_result.st_size, stat_result.st_mtime_ns, file_hash)
        return file_hash


def _git_state(root: Path) -> str:
    git_dir = root / ".git"
    if not git_dir.is_dir():
        return "no-git"
    parts: List[str] = []
    head = git_dir / "HEAD"
    try:
        head_value = head.read_text(encoding="utf-8").strip()
    except OSError:
        head_value = ""
    parts.append(head_value)
    names = ["index", "ORIG_HEAD", "FETCH_HEAD"]
    if head_value.startswith("ref: "):
        names.append(head_value[5:].strip())
    for name in names:
        try:
            stat_result = (git_dir / name).stat()
        except OSError:
            continue
        parts.append(f"{name}:{stat_result.st_size}:{stat_result.st_mtime_ns}")
    return "|".join(parts)


__all__ = [
    "IgnoreRule",
    "RepoScanner",
    "build_ignore_rule",
    "compile_rules",
    "matches_any",
    "should_ignore",
]
