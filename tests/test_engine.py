"""Tests for the scheduling engine: caching, retries, timeouts and filtering."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, List, Sequence

import pytest

from repohealth.checkers import Checker, LicenseChecker
from repohealth.config import CheckerDefinition, EngineConfig
from repohealth.deadline import Deadline
from repohealth.engine import EngineOptions, HealthEngine
from repohealth.errors import CheckerNotFound, TerminalExecutionError, TransientExecutionError
from repohealth.models import Severity, TaskState
from repohealth.registry import CheckerRegistry
from repohealth.repo_scanner import RepoScanner
from repohealth.stores import ResultCache
from tests._fixtures.definitions import DefinitionFactory
from tests._fixtures.repo_builder import RepoBuilder


class CountingChecker(Checker):
    """Returns one finding per call and records how often it ran."""

    checker_id = "counting"

    def __init__(self, severity: Severity | None = None) -> None:
        self.calls = 0
        self.severity = severity
        self._lock = threading.Lock()

    def run(self, repository, definition, deadline):  # type: ignore[no-untyped-def]
        with self._lock:
            self.calls += 1
        return [self.finding(definition, repository, "counted", severity=self.severity, path="a.py", line=1)]


class ScriptedChecker(Checker):
    """Raises the queued errors in order, then succeeds."""

    checker_id = "scripted"

    def __init__(self, errors: List[Exception]) -> None:
        self.errors = list(errors)
        self.calls = 0

    def run(self, repository, definition, deadline):  # type: ignore[no-untyped-def]
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return [self.finding(definition, repository, "recovered")]


class BlockingChecker(Checker):
    checker_id = "blocking"

    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls = 0

    def run(self, repository, definition, deadline):  # type: ignore[no-untyped-def]
        self.calls += 1
        self.release.wait(5)
        return [self.finding(definition, repository, "late result")]


class OverlapChecker(Checker):
    """Tracks how many runs are in flight at once."""

    checker_id = "overlap"

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def run(self, repository, definition, deadline):  # type: ignore[no-untyped-def]
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return []


class StallingScanner(RepoScanner):
    """Fingerprinting that outlives the deadline it is given."""

    def __init__(self, clock: FakeClock) -> None:
        super().__init__()
        self.clock = clock
        self.deadlines: List[Deadline | None] = []

    def fingerprint(self, root, *, deadline=None):  # type: ignore[no-untyped-def]
        self.deadlines.append(deadline)
        self.clock.now += 60
        if deadline is not None:
            deadline.check("fingerprinting")
        return "never-reached"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _engine(
    make_definition: DefinitionFactory,
    checkers: dict[str, Checker],
    *,
    definitions: Sequence[CheckerDefinition] | None = None,
    cache: ResultCache | None = None,
    retry_attempts: int = 3,
    timeout: float = 30.0,
    sleeps: list[float] | None = None,
    max_concurrency: int = 4,
    **engine_kwargs: Any,
) -> HealthEngine:
    defs = definitions or [make_definition(checker_id) for checker_id in checkers]
    config = EngineConfig(
        max_concurrency=max_concurrency, timeout=timeout, retry_attempts=retry_attempts, retry_delay=0.5
    )
    recorder: list[float] = sleeps if sleeps is not None else []
    return HealthEngine(
        CheckerRegistry(defs), checkers, config=config, cache=cache, sleep=recorder.append, **engine_kwargs
    )


def test_cache_hit_within_ttl_skips_checker(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    repo_builder.write({"a.py": "x = 1\n"})
    clock = FakeClock()
    checker = CountingChecker()
    engine = _engine(make_definition, {"counting": checker}, cache=ResultCache(ttl=300, clock=clock))
    repo = repo_builder.repository()

    first = engine.run([repo])
    clock.now += 100
    second = engine.run([repo])

    assert checker.calls == 1
    assert second.repositories[repo.name] == first.repositories[repo.name]
    assert second.metadata["cached_tasks"] == 1


def test_cache_miss_after_ttl_reruns_checker(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    repo_builder.write({"a.py": "x = 1\n"})
    clock = FakeClock()
    checker = CountingChecker()
    engine = _engine(make_definition, {"counting": checker}, cache=ResultCache(ttl=300, clock=clock))
    repo = repo_builder.repository()

    engine.run([repo])
    clock.now += 301
    engine.run([repo])

    assert checker.calls == 2


def test_repository_change_invalidates_cache(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    repo_builder.write({"a.py": "x = 1\n"})
    checker = CountingChecker()
    engine = _engine(make_definition, {"counting": checker}, cache=ResultCache(ttl=300, clock=FakeClock()))
    repo = repo_builder.repository()

    engine.run([repo])
    repo_builder.write({"b.py": "y = 2\n"})
    engine.run([repo])

    assert checker.calls == 2


def test_option_change_invalidates_cache(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = CountingChecker()
    cache = ResultCache(ttl=300, clock=FakeClock())
    repo = repo_builder.repository()

    _engine(make_definition, {"counting": checker}, cache=cache).run([repo])
    changed = [make_definition("counting", options={"strict": True})]
    _engine(make_definition, {"counting": checker}, definitions=changed, cache=cache).run([repo])

    assert checker.calls == 2


def test_transient_failures_are_retried_until_success(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = ScriptedChecker([TransientExecutionError("flaky"), TransientExecutionError("flaky")])
    sleeps: list[float] = []
    engine = _engine(make_definition, {"scripted": checker}, retry_attempts=3, sleeps=sleeps)

    result = engine.run_task(repo_builder.repository(), make_definition("scripted"))

    assert result.state is TaskState.DONE
    assert result.attempts == 3
    assert [f.message for f in result.findings] == ["recovered"]
    assert sleeps == [0.5, 0.5]
    assert result.history == [
        TaskState.PENDING,
        TaskState.EXECUTING,
        TaskState.RETRYING,
        TaskState.EXECUTING,
        TaskState.RETRYING,
        TaskState.EXECUTING,
        TaskState.DONE,
    ]


def test_exhausted_retries_become_one_high_finding(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = ScriptedChecker([TransientExecutionError("network down")] * 4)
    engine = _engine(make_definition, {"scripted": checker}, retry_attempts=3)
    repo = repo_builder.repository()

    report = engine.run([repo])

    findings = report.repositories[repo.name]
    assert checker.calls == 4
    assert len(findings) == 1
    assert findings[0].severity is Severity.HIGH
    assert findings[0].message == (
        f"Checker 'scripted' failed on '{repo.name}' after 4 attempt(s): network down"
    )
    assert findings[0].metadata == {"state": "failed", "attempts": 4}
    assert report.metadata["failed_tasks"] == 1
    assert report.exit_code == 1


def test_terminal_failure_is_not_retried(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = ScriptedChecker([TerminalExecutionError("malformed repository")])
    sleeps: list[float] = []
    engine = _engine(make_definition, {"scripted": checker}, sleeps=sleeps)

    result = engine.run_task(repo_builder.repository(), make_definition("scripted"))

    assert result.state is TaskState.FAILED
    assert result.attempts == 1
    assert checker.calls == 1
    assert sleeps == []


def test_unexpected_exception_fails_task_without_aborting_run(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    broken = ScriptedChecker([RuntimeError("boom")])
    healthy = CountingChecker()
    engine = _engine(make_definition, {"scripted": broken, "counting": healthy})
    repo = repo_builder.repository()

    report = engine.run([repo])

    messages = sorted(f.message for f in report.repositories[repo.name])
    assert messages[0] == "Checker 'scripted' failed on 'repo' after 1 attempt(s): unexpected RuntimeError: boom"
    assert messages[1] == "counted"


def test_timeout_discards_late_result_and_retries(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = BlockingChecker()
    engine = _engine(make_definition, {"blocking": checker}, retry_attempts=1, timeout=0.05)
    try:
        result = engine.run_task(repo_builder.repository(), make_definition("blocking"))
    finally:
        checker.release.set()

    assert result.state is TaskState.FAILED
    assert result.attempts == 2
    assert checker.calls == 2
    assert "did not finish within 0.05s" in (result.error or "")
    assert [f.severity for f in result.findings] == [Severity.HIGH]


def test_per_run_timeout_overrides_definition(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    checker = BlockingChecker()
    engine = _engine(make_definition, {"blocking": checker}, retry_attempts=0)
    definition = make_definition("blocking", timeout=60)
    try:
        result = engine.run_task(repo_builder.repository(), definition, EngineOptions(timeout_seconds=0.05))
    finally:
        checker.release.set()

    assert result.state is TaskState.FAILED
    assert result.attempts == 1


def test_severity_threshold_filters_findings(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    low = CountingChecker(severity=Severity.LOW)
    high = ScriptedChecker([])
    definitions = [
        make_definition("counting", categories=("quality",)),
        make_definition("scripted", categories=("security",), severity=Severity.HIGH),
    ]
    engine = _engine(make_definition, {"counting": low, "scripted": high}, definitions=definitions)
    repo = repo_builder.repository()

    report = engine.run([repo], EngineOptions(severity_threshold=Severity.MEDIUM))

    assert [f.checker_id for f in report.repositories[repo.name]] == ["scripted"]
    assert report.summary.warning == 1
    assert report.summary.info == 0


def test_category_filters_select_checkers(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    quality = CountingChecker()
    security = ScriptedChecker([])
    definitions = [
        make_definition("counting", categories=("quality",)),
        make_definition("scripted", categories=("security",)),
    ]
    engine = _engine(make_definition, {"counting": quality, "scripted": security}, definitions=definitions)

    report = engine.run([repo_builder.repository()], EngineOptions(exclude_categories=("security",)))

    assert report.metadata["checkers"] == ["counting"]
    assert security.calls == 0
    assert list(report.categories) == ["quality"]


def test_sequential_mode_runs_every_task(tmp_path: Path, make_definition: DefinitionFactory) -> None:
    repos = []
    for name in ("zeta", "alpha", "mid"):
        builder = RepoBuilder(tmp_path, name)
        repos.append(builder.repository())
    checker = CountingChecker()
    engine = _engine(make_definition, {"counting": checker})

    report = engine.run(repos, EngineOptions(parallel=False))

    assert checker.calls == 3
    assert list(report.repositories) == ["alpha", "mid", "zeta"]
    assert report.metadata["tasks"] == 3


def test_missing_checker_implementation_is_config_error(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    engine = HealthEngine(CheckerRegistry([make_definition("ghost")]), {})
    with pytest.raises(CheckerNotFound):
        engine.run([repo_builder.repository()])


def test_no_enabled_checkers_yields_clean_report(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    engine = _engine(
        make_definition,
        {"counting": CountingChecker()},
        definitions=[make_definition("counting", enabled=False)],
    )
    repo = repo_builder.repository()

    report = engine.run([repo])

    assert report.repositories[repo.name] == ()
    assert report.exit_code == 0


def test_findings_are_independent_of_completion_order(tmp_path: Path, make_definition: DefinitionFactory) -> None:
    repos = [RepoBuilder(tmp_path, name).repository() for name in ("b", "a")]
    checker = CountingChecker()
    engine = _engine(make_definition, {"counting": checker})

    parallel = engine.run(repos)
    sequential = engine.run(repos, EngineOptions(parallel=False))

    assert parallel.to_dict(include_metadata=False) == sequential.to_dict(include_metadata=False)

def test_license_cache_follows_node_modules(repo_builder: RepoBuilder, make_definition: DefinitionFactory) -> None:
    manifest = "node_modules/pkg/package.json"
    repo_builder.write({manifest: json.dumps({"name": "pkg", "license": "MIT"})})
    definition = make_definition(
        "dependencies-licenses", categories=("dependencies",), options={"forbidden_licenses": ["GPL-3.0"]}
    )
    engine = _engine(
        make_definition,
        {"dependencies-licenses": LicenseChecker()},
        definitions=[definition],
        cache=ResultCache(ttl=300, clock=FakeClock()),
    )
    repo = repo_builder.repository()

    first = engine.run([repo])
    unchanged = engine.run([repo])
    repo_builder.write({manifest: json.dumps({"name": "pkg", "license": "GPL-3.0"})})
    reinstalled = engine.run([repo])

    assert first.repositories[repo.name] == ()
    assert unchanged.metadata["cached_tasks"] == 1
    assert reinstalled.metadata["cached_tasks"] == 0
    assert [f.message for f in reinstalled.repositories[repo.name]] == ["pkg uses forbidden license GPL-3.0"]


def test_slow_fingerprint_bypasses_cache_within_deadline(
    repo_builder: RepoBuilder, make_definition: DefinitionFactory
) -> None:
    clock = FakeClock()
    scanner = StallingScanner(clock)
    checker = CountingChecker()
    engine = _engine(
        make_definition,
        {"counting": checker},
        cache=ResultCache(ttl=300, clock=clock),
        timeout=30.0,
        scanner=scanner,
        clock=clock,
    )
    repo = repo_builder.repository()

    result = engine.run_task(repo, make_definition("counting"))
    engine.run([repo])

    assert [deadline.timeout for deadline in scanner.deadlines if deadline is not None] == [30.0, 30.0]
    assert result.state is TaskState.DONE
    assert not result.cached
    assert result.history[:3] == [TaskState.PENDING, TaskState.CACHE_LOOKUP, TaskState.EXECUTING]
    assert checker.calls == 2


def test_pool_never_exceeds_max_concurrency(tmp_path: Path, make_definition: DefinitionFactory) -> None:
    repos = [RepoBuilder(tmp_path, f"repo{index}").repository() for index in range(6)]
    checker = OverlapChecker()
    engine = _engine(make_definition, {"overlap": checker}, max_concurrency=2)

    engine.run(repos)

    assert checker.calls == 6
    assert 1 <= checker.peak <= 2


def test_sequential_mode_runs_one_task_at_a_time(tmp_path: Path, make_definition: DefinitionFactory) -> None:
    repos = [RepoBuilder(tmp_path, f"repo{index}").repository() for index in range(3)]
    checker = OverlapChecker()
    engine = _engine(make_definition, {"overlap": checker}, max_concurrency=4)

    engine.run(repos, EngineOptions(parallel=False))

    assert checker.peak == 1
