from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from .fs_atomic import atomic_write_json, read_json_or_none

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupKey:
    board: str
    class_num: int
    lang: str
    subject: Optional[str] = None
    semester: Optional[str] = None

    def composite(self) -> str:
        parts = [self.board, str(self.class_num)]
        if self.subject:
            parts.append(self.subject)
        parts.append(self.lang)
        if self.semester:
            parts.append(str(self.semester))
        return "-".join(parts)


@dataclass(frozen=True)
class CacheEntry:
    values: List[str]
    updated_at: float

    def age_sec(self, now: float) -> float:
        return now - self.updated_at

    def to_dict(self) -> Dict[str, Any]:
        return {"data": list(self.values), "timestamp": self.updated_at}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["CacheEntry"]:
        """Rebuild an entry from a stored record; anything malformed is None."""
        if not isinstance(raw, dict):
            return None
        values = raw.get("data")
        stamp = raw.get("timestamp")
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            return None
        if isinstance(stamp, bool) or not isinstance(stamp, (int, float)):
            return None
        return cls(values=list(values), updated_at=float(stamp))


class LookupStore(Protocol):
    def get(self, key: LookupKey) -> Optional[CacheEntry]: ...

    def put(self, key: LookupKey, entry: CacheEntry) -> None: ...


class LocalLookupStore:
    """Process-local tier: a dict of raw records, optionally mirrored to one JSON file."""

    def __init__(self, namespace: str, path: Optional[Path] = None):
        self.namespace = namespace
        self.path = path
        self._lock = threading.Lock()
        self._records: Dict[str, Any] = {}
        if path is not None:
            loaded = read_json_or_none(path)
            if isinstance(loaded, dict):
                self._records = loaded
            elif loaded is not None:
                _log.warning("local cache %s is not an object; starting empty", namespace)

    @classmethod
    def in_dir(cls, namespace: str, cache_dir: Optional[Path]) -> "LocalLookupStore":
        if cache_dir is None:
            return cls(namespace)
        return cls(namespace, Path(cache_dir) / f"{namespace}.json")

    def get(self, key: LookupKey) -> Optional[CacheEntry]:
        with self._lock:
            raw = self._records.get(key.composite())
        if raw is None:
            return None
        entry = CacheEntry.from_dict(raw)
        if entry is None:
            _log.warning("malformed local cache record for %s in %s", key.composite(), self.namespace)
        return entry

    def put(self, key: LookupKey, entry: CacheEntry) -> None:
        with self._lock:
            self._records[key.composite()] = entry.to_dict()
            snapshot = dict(self._records)
        if self.path is not None:
            try:
                atomic_write_json(self.path, snapshot)
            except OSError:
                _log.warning("failed to persist local cache %s", self.path, exc_info=True)


class TwoTierLookupCache:
    """Local tier in front of a shared remote tier, in front of a generator.

    A hit in either tier inside its staleness window short-circuits the rest.
    Fresh results are written to both tiers; remote failures are logged and
    treated as a miss (reads) or ignored (writes).
    """

    def __init__(
        self,
        local: LookupStore,
        remote: Optional[LookupStore] = None,
        *,
        clock: Callable[[], float] = time.time,
        local_ttl_sec: float = 7 * 24 * 3600,
        remote_ttl_sec: float = 90 * 24 * 3600,
    ):
        self.local = local
        self.remote = remote
        self.clock = clock
        self.local_ttl_sec = float(local_ttl_sec)
        self.remote_ttl_sec = float(remote_ttl_sec)

    def _read_local(self, key: LookupKey) -> Optional[CacheEntry]:
        try:
            return self.local.get(key)
        except Exception:
            _log.warning("local cache read failed for %s", key.composite(), exc_info=True)
            return None

    def _read_remote(self, key: LookupKey) -> Optional[CacheEntry]:
        if self.remote is None:
            return None
        try:
            return self.remote.get(key)
        except Exception:
            _log.warning("remote cache read failed for %s", key.composite(), exc_info=True)
            return None

    def _write_remote(self, key: LookupKey, entry: CacheEntry) -> None:
        if self.remote is None:
            return
        try:
            self.remote.put(key, entry)
        except Exception:
            _log.warning("remote cache write failed for %s", key.composite(), exc_info=True)

    def lookup(self, key: LookupKey, generate: Callable[[], List[str]]) -> List[str]:
        now = self.clock()
        local = self._read_local(key)
        if local is not None and local.values and local.age_sec(now) < self.local_ttl_sec:
            _log.debug("local cache hit for %s", key.composite())
            return list(local.values)

        remote = self._read_remote(key)
        if remote is not None and remote.values and remote.age_sec(now) < self.remote_ttl_sec:
            _log.debug("remote cache hit for %s", key.composite())
            self.local.put(key, CacheEntry(values=list(remote.values), updated_at=now))
            return list(remote.values)

        values = [str(v) for v in generate()]
        if values:
            entry = CacheEntry(values=values, updated_at=self.clock())
            self.local.put(key, entry)
            self._write_remote(key, entry)
        return list(values)
