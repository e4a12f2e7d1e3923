"""TTL cache for checker results, optionally persisted between runs."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..logging import get_logger
from ..models import Finding

_CACHE_VERSION = 1


def options_fingerprint(payload: Mapping[str, Any]) -> str:
    """Stable digest of a JSON-compatible mapping of checker settings."""
    encoded = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ResultCache:
    """Stores checker findings keyed by repository, checker and option fingerprints.

    Entries older than ``ttl`` seconds are never returned. All operations are
    guarded by a lock so concurrent tasks can share one instance.
    """

    def __init__(
        self,
        ttl: float,
        path: Path | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl < 0:
            raise ValueError("ttl must be non-negative")
        self.ttl = ttl
        self._path = path
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._dirty = False
        self.logger = get_logger("stores.result_cache")
        if self._path is not None:
            self._load(self._path)

    @staticmethod
    def make_key(repository_fingerprint: str, checker_id: str, options_digest: str) -> str:
        material = "\0".join((repository_fingerprint, checker_id, options_digest))
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[List[Finding]]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - float(entry["stored_at"]) >= self.ttl:
                del self._entries[key]
                self._dirty = True
                return None
            payload = list(entry["findings"])
        return [Finding.from_dict(item) for item in payload]

    def store(self, key: str, findings: Sequence[Finding]) -> None:
        serialised = [finding.to_dict() for finding in findings]
        entry = {"stored_at": self._clock(), "findings": serialised}
        with self._lock:
            self._entries[key] = entry
            self._dirty = True

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now - float(entry["stored_at"]) >= self.ttl]
            for key in expired:
                del self._entries[key]
            if expired:
                self._dirty = True
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._dirty = True

    def persist(self) -> None:
        if self._path is None:
            return
        self.purge_expired()
        with self._lock:
            if not self._dirty:
                return
            payload = {"version": _CACHE_VERSION, "entries": dict(self._entries)}
            self._dirty = False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable result cache %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _CACHE_VERSION:
            return
        entries = data.get("entries")
        if not isinstance(entries, dict):
            return
        for key, raw in entries.items():
            if not isinstance(raw, dict) or not isinstance(raw.get("findings"), list):
                continue
            if not isinstance(raw.get("stored_at"), (int, float)):
                continue
            self._entries[str(key)] = raw
        self.purge_expired()
        self._dirty = False


__all__ = ["ResultCache", "options_fingerprint"]
