"""Checkers that inspect git working tree state and commit history."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, List, Sequence

from pydantic import Field

from ..config import CheckerDefinition
from ..deadline import Deadline
from ..errors import TerminalExecutionError, TransientExecutionError
from ..logging import get_logger
from ..models import Finding, Repository
from ..process import CommandResult, CommandRunner, run_command
from .base import Checker, CheckerOptions

_MAX_LISTED_FILES = 20
_SECONDS_PER_DAY = 86400


def _git(runner: CommandRunner, root: Path, args: Sequence[str], deadline: Deadline) -> CommandResult:
    result = runner(["git", *args], root, deadline)
    if result.ok:
        return result
    stderr = result.stderr.strip()
    if "not a git repository" in stderr.lower():
        raise TerminalExecutionError(f"{root} is not a git repository")
    raise TransientExecutionError(f"git {' '.join(args)} failed ({result.returncode}): {stderr}")


class GitStatusOptions(CheckerOptions):
    check_uncommitted: bool = True
    check_untracked: bool = True


class GitStatusChecker(Checker):
    """Flags uncommitted changes and untracked files."""

    checker_id = "git-status"
    options_model = GitStatusOptions

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or run_command

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: GitStatusOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        result = _git(self._runner, root, ["status", "--porcelain"], deadline)

        modified: List[str] = []
        untracked: List[str] = []
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            status, path = line[:2], line[3:]
            if status == "??":
                untracked.append(path)
            else:
                modified.append(path)

        findings: List[Finding] = []
        if options.check_uncommitted and modified:
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"{len(modified)} uncommitted change(s) in working tree",
                    metric=len(modified),
                    files=modified[:_MAX_LISTED_FILES],
                )
            )
        if options.check_untracked and untracked:
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"{len(untracked)} untracked file(s)",
                    metric=len(untracked),
                    files=untracked[:_MAX_LISTED_FILES],
                )
            )
        return findings


class GitCommitsOptions(CheckerOptions):
    check_commit_messages: bool = True
    max_commit_age_days: int = Field(default=90, ge=0)
    min_message_length: int = Field(default=10, ge=0)
    max_commits: int = Field(default=50, ge=1)


class GitCommitsChecker(Checker):
    """Flags stale repositories and terse commit messages."""

    checker_id = "git-commits"
    options_model = GitCommitsOptions

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._runner = runner or run_command
        self._clock = clock
        self.logger = get_logger("checkers.git")

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: GitCommitsOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        result = self._runner(
            ["git", "log", f"-n{options.max_commits}", "--format=%H%x1f%ct%x1f%s"],
            root,
            deadline,
        )
        if not result.ok and "does not have any commits" in result.stderr:
            return [self.finding(definition, repository, "Repository has no commits")]
        if not result.ok:
            _git(self._runner, root, ["rev-parse", "--git-dir"], deadline)
            raise TransientExecutionError(f"git log failed ({result.returncode}): {result.stderr.strip()}")

        commits = []
        for line in result.stdout.splitlines():
            parts = line.split("\x1f", 2)
            if len(parts) != 3:
                self.logger.debug("Ignoring malformed git log line: %r", line)
                continue
            sha, timestamp, subject = parts
            try:
                commits.append((sha, int(timestamp), subject.strip()))
            except ValueError:
                self.logger.debug("Ignoring commit with bad timestamp: %r", line)
        if not commits:
            return [self.finding(definition, repository, "Repository has no commits")]

        findings: List[Finding] = []
        newest = max(timestamp for _, timestamp, _ in commits)
        age_days = int((self._clock() - newest) // _SECONDS_PER_DAY)
        if age_days > options.max_commit_age_days:
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"Last commit was {age_days} days ago",
                    metric=age_days,
                    threshold=options.max_commit_age_days,
                )
            )
        if options.check_commit_messages:
            for sha, _, subject in commits:
                if len(subject) >= options.min_message_length:
                    continue
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        f"Commit {sha[:8]} has a short message: '{subject}'",
                        metric=len(subject),
                        threshold=options.min_message_length,
                        commit=sha,
                    )
                )
        return findings


__all__ = ["GitCommitsChecker", "GitStatusChecker"]
