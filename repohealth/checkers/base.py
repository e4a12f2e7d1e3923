"""Base classes for checker plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import CheckerDefinition
from ..deadline import Deadline
from ..errors import ConfigError, TerminalExecutionError
from ..models import Finding, Repository, Severity


class CheckerOptions(BaseModel):
    """Base options model; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class Checker(ABC):
    """Contract for checkers that inspect one repository.

    ``run`` returns the findings for the repository or raises an
    :class:`~repohealth.errors.ExecutionError` subclass. Implementations must
    observe ``deadline`` and never block past it.
    """

    checker_id: str = ""
    cache_version = "1"
    options_model: Type[CheckerOptions] = CheckerOptions

    def cache_token(self, repository: Repository) -> str:
        """Extra state that changes this checker's results for ``repository`` beyond its definition."""
        return ""

    def parse_options(self, definition: CheckerDefinition) -> Any:
        try:
            return self.options_model.model_validate(dict(definition.options))
        except ValidationError as exc:
            raise ConfigError(f"Checker '{definition.id}' has invalid options: {exc}") from exc

    @abstractmethod
    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        """Inspect ``repository`` and return its findings."""

    @staticmethod
    def repository_root(repository: Repository) -> Path:
        root = Path(repository.path).expanduser()
        if not root.is_dir():
            raise TerminalExecutionError(f"Repository path not found: {repository.path}")
        return root

    @staticmethod
    def finding(
        definition: CheckerDefinition,
        repository: Repository,
        message: str,
        *,
        severity: Optional[Severity] = None,
        path: Optional[str] = None,
        line: Optional[int] = None,
        metric: Optional[float] = None,
        threshold: Optional[float] = None,
        **metadata: Any,
    ) -> Finding:
        return Finding(
            checker_id=definition.id,
            category=definition.category,
            severity=severity or definition.severity,
            repository=repository.name,
            message=message,
            path=path,
            line=line,
            metric=metric,
            threshold=threshold,
            metadata=metadata,
        )


__all__ = ["Checker", "CheckerOptions"]
