"""Language scanner lookup, including third-party scanners from entry points."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, List, Optional

from .base import LanguageScanner
from .brace import LANGUAGES, BraceScanner
from .python import PythonScanner

_ENTRY_POINT_GROUP = "repohealth.scanners"

_BUILTIN_FACTORIES: Dict[str, Callable[[], LanguageScanner]] = {
    "python": PythonScanner,
}
for _name, _spec in LANGUAGES.items():
    _BUILTIN_FACTORIES[_name] = lambda spec=_spec: BraceScanner(spec)
    for _alias in _spec.aliases:
        _BUILTIN_FACTORIES[_alias] = _BUILTIN_FACTORIES[_name]


def available_languages() -> List[str]:
    names = {"python", *LANGUAGES}
    names.update(entry.name.lower() for entry in _iter_entry_points())
    return sorted(names)


def get_scanner(language: str) -> Optional[LanguageScanner]:
    """Return a scanner for ``language`` or ``None`` when none is registered."""
    key = language.lower()
    factory = _BUILTIN_FACTORIES.get(key)
    if factory is not None:
        return factory()
    for entry in _iter_entry_points():
        if entry.name.lower() != key:
            continue
        loaded = entry.load()
        instance = loaded() if isinstance(loaded, type) or callable(loaded) else loaded
        if not isinstance(instance, LanguageScanner):
            raise TypeError(f"Scanner entry point '{entry.name}' did not provide a LanguageScanner")
        return instance
    return None


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = ["available_languages", "get_scanner"]
