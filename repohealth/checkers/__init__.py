"""Checker plugin implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, Mapping

from ..analyzers import AnalyzerDefinition
from ..config import CheckerDefinition
from ..errors import ConfigError
from .base import Checker, CheckerOptions
from .complexity import ComplexityChecker
from .dependencies import LicenseChecker, OutdatedDependenciesChecker
from .documentation import ApiDocsChecker, ReadmeChecker
from .git import GitCommitsChecker, GitStatusChecker
from .security import PermissionsChecker, SecretsChecker

_ENTRY_POINT_GROUP = "repohealth.checkers"


def _builtin_factories(
    analyzers: Mapping[str, AnalyzerDefinition] | None,
) -> Dict[str, Callable[[], Checker]]:
    return {
        "cyclomatic-complexity": lambda: ComplexityChecker(analyzers),
        "git-status": GitStatusChecker,
        "git-commits": GitCommitsChecker,
        "security-secrets": SecretsChecker,
        "security-permissions": PermissionsChecker,
        "dependencies-outdated": OutdatedDependenciesChecker,
        "dependencies-licenses": LicenseChecker,
        "documentation-readme": ReadmeChecker,
        "documentation-api": ApiDocsChecker,
    }


def builtin_checker_ids() -> list[str]:
    return list(_builtin_factories(None))


def load_checkers(
    definitions: Iterable[CheckerDefinition],
    *,
    analyzers: Mapping[str, AnalyzerDefinition] | None = None,
) -> Dict[str, Checker]:
    """Instantiate a checker for every definition and validate its options.

    Definitions without a built-in implementation are resolved through the
    ``repohealth.checkers`` entry point group. Unknown ids and invalid options
    raise :class:`ConfigError`.
    """
    factories = _builtin_factories(analyzers)
    plugins = {entry.name: entry for entry in _iter_entry_points()}
    checkers: Dict[str, Checker] = {}
    for definition in definitions:
        factory = factories.get(definition.id)
        if factory is not None:
            instance = factory()
        elif definition.id in plugins:
            instance = _coerce_checker(definition.id, plugins[definition.id].load())
        else:
            raise ConfigError(f"No implementation registered for checker '{definition.id}'")
        if definition.enabled:
            instance.parse_options(definition)
        checkers[definition.id] = instance
    return checkers


def _coerce_checker(name: str, obj: object) -> Checker:
    if isinstance(obj, Checker):
        return obj
    if isinstance(obj, type) and issubclass(obj, Checker):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, Checker):
            return instance
    raise ConfigError(f"Checker entry point '{name}' must be a Checker subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "ApiDocsChecker",
    "Checker",
    "CheckerOptions",
    "ComplexityChecker",
    "GitCommitsChecker",
    "GitStatusChecker",
    "LicenseChecker",
    "OutdatedDependenciesChecker",
    "PermissionsChecker",
    "ReadmeChecker",
    "SecretsChecker",
    "builtin_checker_ids",
    "load_checkers",
]
