"""Tests for the checker registry."""

from __future__ import annotations

import pytest

from repohealth.config import CheckerDefinition
from repohealth.errors import CheckerNotFound, ConfigError
from repohealth.registry import CheckerRegistry
from tests._fixtures.definitions import DefinitionFactory


@pytest.fixture
def registry(make_definition: DefinitionFactory) -> CheckerRegistry:
    return CheckerRegistry(
        [
            make_definition("cyclomatic-complexity", categories=("quality",)),
            make_definition("security-secrets", categories=("security",)),
            make_definition("dependencies-licenses", categories=("dependencies", "compliance")),
            make_definition("git-commits", categories=("git",), enabled=False),
        ]
    )


def test_list_enabled_keeps_configuration_order(registry: CheckerRegistry) -> None:
    assert [item.id for item in registry.list_enabled()] == [
        "cyclomatic-complexity",
        "security-secrets",
        "dependencies-licenses",
    ]


def test_include_categories_match_any_category(registry: CheckerRegistry) -> None:
    selected = registry.list_enabled(include_categories=["Compliance", "quality"])
    assert [item.id for item in selected] == ["cyclomatic-complexity", "dependencies-licenses"]


def test_exclusion_wins_over_inclusion(registry: CheckerRegistry) -> None:
    selected = registry.list_enabled(include_categories=["dependencies", "security"], exclude_categories=["compliance"])
    assert [item.id for item in selected] == ["security-secrets"]


def test_unknown_category_selects_nothing(registry: CheckerRegistry) -> None:
    assert registry.list_enabled(include_categories=["performance"]) == []


def test_get_unknown_checker_raises(registry: CheckerRegistry) -> None:
    assert registry.get("security-secrets").category == "security"
    with pytest.raises(CheckerNotFound) as excinfo:
        registry.get("nope")
    assert str(excinfo.value) == "Unknown checker: nope"
    assert isinstance(excinfo.value, ConfigError)


def test_duplicate_ids_are_rejected(make_definition: DefinitionFactory) -> None:
    with pytest.raises(ConfigError):
        CheckerRegistry([make_definition("a"), make_definition("a")])


def test_categories_mapping_includes_disabled_checkers(registry: CheckerRegistry) -> None:
    assert registry.categories() == {
        "compliance": ["dependencies-licenses"],
        "dependencies": ["dependencies-licenses"],
        "git": ["git-commits"],
        "quality": ["cyclomatic-complexity"],
        "security": ["security-secrets"],
    }


def test_definition_options_are_read_only() -> None:
    definition = CheckerDefinition(id="x", categories=("quality",), options={"a": 1})
    with pytest.raises(TypeError):
        definition.options["a"] = 2  # type: ignore[index]
    assert "x" in CheckerRegistry([definition])
    assert len(CheckerRegistry([definition])) == 1
