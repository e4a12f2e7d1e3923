from __future__ import annotations

import logging
from pathlib import Path

import pytest

from repohealth.config import CheckerDefinition
from repohealth.models import Severity
from tests._fixtures.definitions import DefinitionFactory
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture(autouse=True)
def _reset_repohealth_logger():
    """Undo CLI logging configuration so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger("repohealth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def make_definition() -> DefinitionFactory:
    """Build checker definitions with sensible test defaults."""

    def _make(
        checker_id: str,
        *,
        categories: tuple[str, ...] = ("quality",),
        severity: Severity = Severity.MEDIUM,
        enabled: bool = True,
        timeout: float | None = None,
        options: dict | None = None,
        exclusions: tuple[str, ...] = (),
    ) -> CheckerDefinition:
        return CheckerDefinition(
            id=checker_id,
            categories=categories,
            severity=severity,
            enabled=enabled,
            timeout=timeout,
            options=options or {},
            exclusions=exclusions,
        )

    return _make
