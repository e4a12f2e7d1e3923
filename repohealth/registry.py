"""Checker registry: the single source of truth for which checkers can run."""

from __future__ import annotations

from typing import Collection, Dict, Iterable, List

from .config import CheckerDefinition
from .errors import CheckerNotFound, ConfigError


class CheckerRegistry:
    """Holds immutable checker definitions in configuration order.

    The registry is read-only after construction and safe to share between
    worker threads without locking.
    """

    def __init__(self, definitions: Iterable[CheckerDefinition]) -> None:
        self._definitions: Dict[str, CheckerDefinition] = {}
        for definition in definitions:
            if definition.id in self._definitions:
                raise ConfigError(f"Duplicate checker id: {definition.id}")
            self._definitions[definition.id] = definition

    def __contains__(self, checker_id: object) -> bool:
        return checker_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, checker_id: str) -> CheckerDefinition:
        try:
            return self._definitions[checker_id]
        except KeyError:
            raise CheckerNotFound(checker_id) from None

    def definitions(self) -> List[CheckerDefinition]:
        return list(self._definitions.values())

    def list_enabled(
        self,
        include_categories: Collection[str] = (),
        exclude_categories: Collection[str] = (),
    ) -> List[CheckerDefinition]:
        """Return enabled checkers filtered by category.

        When ``include_categories`` is non-empty only checkers sharing a
        category with it survive; ``exclude_categories`` then removes any
        checker with an excluded category. Exclusion always wins.
        """
        include = {category.lower() for category in include_categories}
        exclude = {category.lower() for category in exclude_categories}
        selected: List[CheckerDefinition] = []
        for definition in self._definitions.values():
            if not definition.enabled:
                continue
            categories = {category.lower() for category in definition.categories}
            if include and not categories & include:
                continue
            if categories & exclude:
                continue
            selected.append(definition)
        return selected

    def categories(self) -> Dict[str, List[str]]:
        """Map every known category to the ids of the checkers tagged with it."""
        mapping: Dict[str, List[str]] = {}
        for definition in self._definitions.values():
            for category in definition.categories:
                mapping.setdefault(category, []).append(definition.id)
        return dict(sorted(mapping.items()))


__all__ = ["CheckerRegistry"]
