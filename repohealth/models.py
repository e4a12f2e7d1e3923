"""Core data models shared across repohealth components."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class Severity(str, Enum):
    """Five-level severity scale used by checkers and findings."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def bucket(self) -> str:
        """Summary bucket (critical, warning or info) for this severity."""
        if self is Severity.CRITICAL:
            return "critical"
        if self in (Severity.HIGH, Severity.MEDIUM):
            return "warning"
        return "info"

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(item.value for item in cls)
            raise ValueError(f"Invalid severity '{value}' (expected one of: {allowed})") from None

    def __str__(self) -> str:
        return self.value


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


@dataclass(frozen=True)
class Repository:
    """A local repository checkout to run checkers against."""

    name: str
    path: str
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Finding:
    """One reported issue produced by a checker invocation."""

    checker_id: str
    category: str
    severity: Severity
    repository: str
    message: str
    path: Optional[str] = None
    line: Optional[int] = None
    metric: Optional[float] = None
    threshold: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def sort_key(self) -> Tuple[Any, ...]:
        return (
            -self.severity.rank,
            self.path or "",
            self.line or 0,
            self.checker_id,
            self.message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checker_id": self.checker_id,
            "category": self.category,
            "severity": self.severity.value,
            "repository": self.repository,
            "message": self.message,
            "path": self.path,
            "line": self.line,
            "metric": self.metric,
            "threshold": self.threshold,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Finding":
        metadata = payload.get("metadata")
        return cls(
            checker_id=str(payload["checker_id"]),
            category=str(payload["category"]),
            severity=Severity.parse(payload["severity"]),
            repository=str(payload["repository"]),
            message=str(payload["message"]),
            path=payload.get("path"),
            line=payload.get("line"),
            metric=payload.get("metric"),
            threshold=payload.get("threshold"),
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )


class TaskState(str, Enum):
    """Lifecycle states of one (repository, checker) task."""

    PENDING = "pending"
    CACHE_LOOKUP = "cache_lookup"
    EXECUTING = "executing"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TaskResult:
    """Outcome of one (repository, checker) task as collected by the engine."""

    repository: Repository
    checker_id: str
    category: str
    state: TaskState = TaskState.PENDING
    findings: List[Finding] = field(default_factory=list)
    attempts: int = 0
    cached: bool = False
    duration: float = 0.0
    error: Optional[str] = None
    history: List[TaskState] = field(default_factory=list)

    def transition(self, state: TaskState) -> None:
        self.state = state
        self.history.append(state)


@dataclass(frozen=True)
class CategorySummary:
    """Per-category finding counts keyed by severity name."""

    category: str
    counts: Mapping[str, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "counts": dict(self.counts), "total": self.total}


@dataclass(frozen=True)
class Summary:
    """Global severity counts for a report."""

    critical: int = 0
    warning: int = 0
    info: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.warning + self.info

    @property
    def exit_code(self) -> int:
        if self.critical > 0:
            return 2
        if self.warning > 0:
            return 1
        return 0

    def to_dict(self) -> Dict[str, int]:
        return {"critical": self.critical, "warning": self.warning, "info": self.info, "total": self.total}


@dataclass(frozen=True)
class HealthReport:
    """Aggregated, immutable result of one engine run."""

    repositories: Mapping[str, Tuple[Finding, ...]]
    summary: Summary
    categories: Mapping[str, CategorySummary]
    generated_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "repositories", MappingProxyType(dict(self.repositories)))
        object.__setattr__(self, "categories", MappingProxyType(dict(self.categories)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def findings(self) -> Iterator[Finding]:
        for findings in self.repositories.values():
            yield from findings

    @property
    def exit_code(self) -> int:
        return self.summary.exit_code

    def to_dict(self, *, include_metadata: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "summary": self.summary.to_dict(),
            "categories": [summary.to_dict() for summary in self.categories.values()],
            "repositories": [
                {
                    "name": name,
                    "findings": [finding.to_dict() for finding in findings],
                }
                for name, findings in self.repositories.items()
            ],
        }
        if include_metadata:
            meta: Dict[str, Any] = {"generated_at": self.generated_at.isoformat()}
            meta.update(self.metadata)
            payload["metadata"] = meta
        return payload


def count_by_severity(findings: List[Finding]) -> Dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts


__all__ = [
    "CategorySummary",
    "Finding",
    "HealthReport",
    "Repository",
    "Severity",
    "Summary",
    "TaskResult",
    "TaskState",
    "count_by_severity",
]
