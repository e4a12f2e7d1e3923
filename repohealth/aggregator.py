"""Builds a deterministic :class:`HealthReport` from collected task results."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    CategorySummary,
    Finding,
    HealthReport,
    Repository,
    Summary,
    TaskResult,
    count_by_severity,
)


def aggregate(
    task_results: Iterable[TaskResult],
    repositories: Sequence[Repository] = (),
    *,
    generated_at: Optional[datetime] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> HealthReport:
    """Merge task results into a report.

    Every repository in ``repositories`` appears in the report even when it
    has no findings. Repositories are ordered by name and findings by
    severity (highest first), path and line, so identical inputs always
    produce identical reports regardless of completion order.
    """
    per_repository: Dict[str, List[Finding]] = {repository.name: [] for repository in repositories}
    per_category: Dict[str, List[Finding]] = {}
    for result in task_results:
        per_repository.setdefault(result.repository.name, []).extend(result.findings)
        per_category.setdefault(result.category, [])
        for finding in result.findings:
            per_category.setdefault(finding.category, []).append(finding)

    ordered = {
        name: tuple(sorted(per_repository[name], key=Finding.sort_key))
        for name in sorted(per_repository)
    }
    categories = {
        name: CategorySummary(category=name, counts=count_by_severity(per_category[name]))
        for name in sorted(per_category)
    }
    return HealthReport(
        repositories=ordered,
        summary=summarize(finding for findings in ordered.values() for finding in findings),
        categories=categories,
        generated_at=generated_at or datetime.now(UTC),
        metadata=dict(metadata or {}),
    )


def summarize(findings: Iterable[Finding]) -> Summary:
    buckets = {"critical": 0, "warning": 0, "info": 0}
    for finding in findings:
        buckets[finding.severity.bucket] += 1
    return Summary(**buckets)


__all__ = ["aggregate", "summarize"]
