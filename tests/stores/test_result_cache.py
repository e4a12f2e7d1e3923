"""Tests for the TTL result cache."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from repohealth.models import Finding, Severity
from repohealth.stores import ResultCache, options_fingerprint


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _finding(message: str = "too complex") -> Finding:
    return Finding(
        checker_id="cyclomatic-complexity",
        category="quality",
        severity=Severity.MEDIUM,
        repository="web",
        message=message,
        path="src/app.py",
        line=12,
        metric=14,
        threshold=10,
        metadata={"function": "handle"},
    )


def test_fresh_entry_is_returned_until_ttl_elapses() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl=300, clock=clock)
    key = ResultCache.make_key("repo-fp", "cyclomatic-complexity", "opts")
    cache.store(key, [_finding()])

    clock.now += 299
    assert cache.get(key) == [_finding()]

    clock.now += 1
    assert cache.get(key) is None
    assert len(cache) == 0


def test_zero_ttl_never_serves_entries() -> None:
    cache = ResultCache(ttl=0, clock=FakeClock())
    cache.store("key", [_finding()])
    assert cache.get("key") is None


def test_negative_ttl_is_rejected() -> None:
    with pytest.raises(ValueError):
        ResultCache(ttl=-1)


def test_keys_differ_by_each_component() -> None:
    base = ResultCache.make_key("fp", "git-status", "opts")
    assert base == ResultCache.make_key("fp", "git-status", "opts")
    assert base != ResultCache.make_key("fp2", "git-status", "opts")
    assert base != ResultCache.make_key("fp", "git-commits", "opts")
    assert base != ResultCache.make_key("fp", "git-status", "opts2")


def test_options_fingerprint_ignores_key_order() -> None:
    assert options_fingerprint({"a": 1, "b": [1, 2]}) == options_fingerprint({"b": [1, 2], "a": 1})
    assert options_fingerprint({"a": 1}) != options_fingerprint({"a": 2})


def test_persisted_entries_survive_reload(tmp_path: Path) -> None:
    clock = FakeClock()
    path = tmp_path / "cache" / "results.json"
    cache = ResultCache(ttl=60, path=path, clock=clock)
    cache.store("fresh", [_finding("fresh")])
    cache.persist()

    clock.now += 30
    reloaded = ResultCache(ttl=60, path=path, clock=clock)

    assert reloaded.get("fresh") == [_finding("fresh")]
    assert reloaded.get("fresh")[0].metadata == {"function": "handle"}  # type: ignore[index]


def test_expired_entries_are_dropped_on_load_and_persist(tmp_path: Path) -> None:
    clock = FakeClock()
    path = tmp_path / "results.json"
    cache = ResultCache(ttl=60, path=path, clock=clock)
    cache.store("old", [_finding("old")])
    clock.now += 50
    cache.store("new", [_finding("new")])
    cache.persist()

    clock.now += 20
    reloaded = ResultCache(ttl=60, path=path, clock=clock)

    assert len(reloaded) == 1
    assert reloaded.get("new") is not None


def test_corrupt_or_foreign_cache_files_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "results.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(ResultCache(ttl=60, path=path)) == 0

    path.write_text(json.dumps({"version": 99, "entries": {"k": {}}}), encoding="utf-8")
    assert len(ResultCache(ttl=60, path=path)) == 0


def test_clear_removes_everything() -> None:
    cache = ResultCache(ttl=60, clock=FakeClock())
    cache.store("a", [])
    cache.store("b", [_finding()])
    cache.clear()
    assert len(cache) == 0
