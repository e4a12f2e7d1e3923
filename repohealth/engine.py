"""Scheduling engine: runs (repository, checker) tasks under a bounded pool."""

from __future__ import annotations

import hashlib
import inspect
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .aggregator import aggregate
from .checkers import Checker, load_checkers
from .config import CheckerDefinition, EngineConfig, HealthConfig
from .deadline import Deadline
from .errors import CheckerNotFound, CheckTimeoutError, ConfigError, ExecutionError
from .logging import get_logger
from .models import Finding, HealthReport, Repository, Severity, TaskResult, TaskState
from .registry import CheckerRegistry
from .repo_scanner import RepoScanner
from .stores import ResultCache, options_fingerprint


@dataclass(frozen=True)
class EngineOptions:
    """Per-run options supplied by the CLI or service layer."""

    include_categories: Tuple[str, ...] = ()
    exclude_categories: Tuple[str, ...] = ()
    severity_threshold: Optional[Severity] = None
    output_format: str = "table"
    output_file: Optional[str] = None
    parallel: bool = True
    timeout_seconds: Optional[float] = None


class HealthEngine:
    """Resolves active checkers and executes them against repositories.

    Each task moves through ``pending -> cache_lookup -> executing`` and ends
    ``done`` or ``failed``; transient errors and timeouts pass through
    ``retrying`` while attempts remain. A failed task is reported as a
    high-severity finding instead of aborting the run.
    """

    def __init__(
        self,
        registry: CheckerRegistry,
        checkers: Mapping[str, Checker],
        *,
        config: EngineConfig | None = None,
        cache: ResultCache | None = None,
        scanner: RepoScanner | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.checkers = dict(checkers)
        self.config = config or EngineConfig()
        self.cache = cache
        self.scanner = scanner or RepoScanner()
        self.logger = get_logger("engine")
        self._sleep = sleep
        self._clock = clock
        self._fingerprints: Dict[str, Optional[str]] = {}
        self._fingerprint_locks: Dict[str, threading.Lock] = {}
        self._fingerprint_guard = threading.Lock()

    @classmethod
    def from_config(cls, config: HealthConfig, *, cache: ResultCache | None = None) -> "HealthEngine":
        registry = CheckerRegistry(config.checkers.values())
        checkers = load_checkers(registry.definitions(), analyzers=config.analyzers)
        if cache is None and config.engine.cache_enabled:
            cache_path = Path(config.engine.cache_file).expanduser() if config.engine.cache_file else None
            cache = ResultCache(config.engine.cache_ttl, cache_path)
        return cls(registry, checkers, config=config.engine, cache=cache)

    def run(
        self,
        repositories: Sequence[Repository],
        options: EngineOptions | None = None,
    ) -> HealthReport:
        options = options or EngineOptions()
        definitions = self.registry.list_enabled(options.include_categories, options.exclude_categories)
        for definition in definitions:
            if definition.id not in self.checkers:
                raise CheckerNotFound(definition.id)

        tasks = [(repository, definition) for repository in repositories for definition in definitions]
        workers = self.config.max_concurrency if options.parallel else 1
        self.logger.info(
            "Running %d checker(s) against %d repositories (%d task(s), %d worker(s))",
            len(definitions),
            len(repositories),
            len(tasks),
            workers,
        )
        self._fingerprints.clear()
        started = self._clock()

        results: List[TaskResult] = []
        if tasks:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repohealth") as pool:
                futures = [
                    pool.submit(self.run_task, repository, definition, options)
                    for repository, definition in tasks
                ]
                for future in as_completed(futures):
                    results.append(future.result())

        if self.cache is not None:
            try:
                self.cache.persist()
            except OSError as exc:
                self.logger.warning("Unable to persist result cache: %s", exc)

        if options.severity_threshold is not None:
            minimum = options.severity_threshold.rank
            for result in results:
                result.findings = [item for item in result.findings if item.severity.rank >= minimum]

        metadata: Dict[str, Any] = {
            "checkers": [definition.id for definition in definitions],
            "tasks": len(tasks),
            "failed_tasks": sum(1 for result in results if result.state is TaskState.FAILED),
            "cached_tasks": sum(1 for result in results if result.cached),
            "duration_seconds": round(self._clock() - started, 3),
        }
        return aggregate(results, repositories, metadata=metadata)

    def run_task(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        options: EngineOptions | None = None,
    ) -> TaskResult:
        """Run one checker against one repository, consulting the cache first."""
        options = options or EngineOptions()
        checker = self.checkers[definition.id]
        result = TaskResult(repository=repository, checker_id=definition.id, category=definition.category)
        result.transition(TaskState.PENDING)
        started = self._clock()

        timeout = options.timeout_seconds or definition.timeout or self.config.timeout
        key: Optional[str] = None
        if self.cache is not None:
            result.transition(TaskState.CACHE_LOOKUP)
            key = self._cache_key(repository, definition, checker, Deadline(timeout, clock=self._clock))
            cached = self.cache.get(key) if key is not None else None
            if cached is not None:
                self.logger.debug("Cache hit for %s on %s", definition.id, repository.name)
                result.findings = cached
                result.cached = True
                result.transition(TaskState.DONE)
                result.duration = self._clock() - started
                return result

        max_attempts = self.config.retry_attempts + 1
        while True:
            result.attempts += 1
            result.transition(TaskState.EXECUTING)
            deadline = Deadline(timeout, clock=self._clock)
            try:
                findings = self._attempt(checker, repository, definition, deadline)
            except ExecutionError as exc:
                result.error = str(exc)
                retry = exc.transient and result.attempts < max_attempts
                self.logger.log(
                    logging.INFO if retry else logging.WARNING,
                    "%s on %s failed (attempt %d/%d): %s",
                    definition.id,
                    repository.name,
                    result.attempts,
                    max_attempts,
                    exc,
                )
                if not retry:
                    break
            except ConfigError as exc:
                result.error = str(exc)
                self.logger.error("%s is misconfigured: %s", definition.id, exc)
                break
            except OSError as exc:
                result.error = str(exc)
                retry = result.attempts < max_attempts
                self.logger.warning("%s on %s hit an I/O error: %s", definition.id, repository.name, exc)
                if not retry:
                    break
            except Exception as exc:
                result.error = f"unexpected {exc.__class__.__name__}: {exc}"
                self.logger.exception("%s crashed on %s", definition.id, repository.name)
                break
            else:
                result.findings = findings
                result.error = None
                if self.cache is not None and key is not None:
                    self.cache.store(key, findings)
                result.transition(TaskState.DONE)
                result.duration = self._clock() - started
                return result

            result.transition(TaskState.RETRYING)
            if self.config.retry_delay > 0:
                self._sleep(self.config.retry_delay)

        result.findings = [self._failure_finding(repository, definition, result)]
        result.transition(TaskState.FAILED)
        result.duration = self._clock() - started
        return result

    # ------------------------------------------------------------------
    # Internal helpers

    def _attempt(
        self,
        checker: Checker,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        outcome: Dict[str, Any] = {}

        def _worker() -> None:
            try:
                outcome["findings"] = list(checker.run(repository, definition, deadline))
            except Exception as exc:
                outcome["error"] = exc

        thread = threading.Thread(target=_worker, name=f"repohealth-{definition.id}", daemon=True)
        thread.start()
        thread.join(deadline.remaining())
        if thread.is_alive() or deadline.expired():
            # results arriving after this point are discarded
            deadline.cancel()
            raise CheckTimeoutError(
                f"{definition.id} did not finish within {deadline.timeout:g}s on {repository.name}"
            )
        if "error" in outcome:
            raise outcome["error"]
        if "findings" not in outcome:
            raise ExecutionError(f"{definition.id} exited without a result")
        return outcome["findings"]

    def _failure_finding(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        result: TaskResult,
    ) -> Finding:
        return Finding(
            checker_id=definition.id,
            category=definition.category,
            severity=Severity.HIGH,
            repository=repository.name,
            message=(
                f"Checker '{definition.id}' failed on '{repository.name}' after "
                f"{result.attempts} attempt(s): {result.error}"
            ),
            metadata={"state": TaskState.FAILED.value, "attempts": result.attempts},
        )

    def _cache_key(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        checker: Checker,
        deadline: Deadline,
    ) -> Optional[str]:
        fingerprint = self._repository_fingerprint(repository, deadline)
        if fingerprint is None:
            return None
        try:
            token = checker.cache_token(repository)
        except OSError as exc:
            self.logger.debug("Cannot compute cache token for %s, bypassing cache: %s", definition.id, exc)
            return None
        digest = options_fingerprint(
            {
                "severity": definition.severity.value,
                "categories": list(definition.categories),
                "options": dict(definition.options),
                "exclusions": list(definition.exclusions),
                "signature": _checker_signature(checker),
                "token": token,
            }
        )
        return ResultCache.make_key(fingerprint, definition.id, digest)

    def _repository_fingerprint(self, repository: Repository, deadline: Deadline) -> Optional[str]:
        with self._fingerprint_guard:
            lock = self._fingerprint_locks.setdefault(repository.path, threading.Lock())
        with lock:
            if repository.path in self._fingerprints:
                return self._fingerprints[repository.path]
            try:
                fingerprint: Optional[str] = self.scanner.fingerprint(repository.path, deadline=deadline)
            except CheckTimeoutError as exc:
                # later tasks for this repository skip the cache too
                self.logger.info("Bypassing cache for %s: %s", repository.name, exc)
                fingerprint = None
            except OSError as exc:
                self.logger.debug("Cannot fingerprint %s, bypassing cache: %s", repository.path, exc)
                fingerprint = None
            self._fingerprints[repository.path] = fingerprint
            return fingerprint


def _checker_signature(checker: Checker) -> str:
    cls = checker.__class__
    try:
        source = inspect.getsource(cls)
    except (OSError, TypeError):
        source_hash = f"{cls.__module__}:{cls.__qualname__}"
    else:
        source_hash = hashlib.sha256(source.encode("utf-8")).hexdigest()
    return f"{cls.__module__}.{cls.__qualname__}:{checker.cache_version}:{source_hash}"


__all__ = ["EngineOptions", "HealthEngine"]
