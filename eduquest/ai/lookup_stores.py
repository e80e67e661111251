from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .lookup_cache import CacheEntry, LookupKey

_log = logging.getLogger(__name__)

KIND_SUBJECTS = "subjects"
KIND_CHAPTERS = "chapters"

BACKEND_SUPABASE = "supabase"
BACKEND_REDIS = "redis"
BACKEND_MEMORY = "memory"
BACKEND_NONE = "none"

_LIST_COLUMNS = {KIND_SUBJECTS: "subjects_list", KIND_CHAPTERS: "chapters_list"}
_CONFLICT_COLUMNS = {
    KIND_SUBJECTS: "board,class,lang",
    KIND_CHAPTERS: "board,class,lang,subject,semester",
}


def _parse_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class SupabaseLookupStore:
    """Remote tier backed by the `subjects` / `chapters` tables.

    Rows are keyed by their natural columns and written with upsert, so
    concurrent writers settle on whichever write lands last.
    """

    def __init__(self, kind: str, client_factory: Callable[[], Any]):
        if kind not in _LIST_COLUMNS:
            raise ValueError(f"unknown lookup kind: {kind}")
        self.kind = kind
        self.table = kind
        self.list_column = _LIST_COLUMNS[kind]
        self._client_factory = client_factory

    def _match_columns(self, key: LookupKey) -> Dict[str, Any]:
        columns: Dict[str, Any] = {"board": key.board, "class": key.class_num, "lang": key.lang}
        if self.kind == KIND_CHAPTERS:
            columns["subject"] = key.subject or ""
            columns["semester"] = key.semester or ""
        return columns

    def get(self, key: LookupKey) -> Optional[CacheEntry]:
        query = self._client_factory().table(self.table).select(f"{self.list_column}, updated_at")
        for column, value in self._match_columns(key).items():
            query = query.eq(column, value)
        response = query.limit(1).execute()
        rows = response.data or []
        if not rows:
            return None
        row = rows[0]
        values = row.get(self.list_column)
        stamp = _parse_timestamp(row.get("updated_at"))
        if not isinstance(values, list) or stamp is None:
            _log.warning("ignoring malformed %s row for %s", self.table, key.composite())
            return None
        return CacheEntry(values=[str(v) for v in values], updated_at=stamp)

    def put(self, key: LookupKey, entry: CacheEntry) -> None:
        row = self._match_columns(key)
        row[self.list_column] = list(entry.values)
        row["updated_at"] = datetime.fromtimestamp(entry.updated_at, tz=timezone.utc).isoformat()
        self._client_factory().table(self.table).upsert(row, on_conflict=_CONFLICT_COLUMNS[self.kind]).execute()

    def ping(self) -> bool:
        self._client_factory().table(self.table).select("updated_at").limit(1).execute()
        return True


class RedisLookupStore:
    def __init__(self, namespace: str, client_factory: Callable[[], Any], *, prefix: str, ttl_sec: Optional[float] = None):
        self.namespace = namespace
        self.prefix = prefix
        self.ttl_sec = ttl_sec
        self._client_factory = client_factory

    def _key(self, key: LookupKey) -> str:
        return f"{self.prefix}:{self.namespace}:{key.composite()}"

    def get(self, key: LookupKey) -> Optional[CacheEntry]:
        raw = self._client_factory().get(self._key(key))
        if not raw:
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            _log.warning("ignoring malformed redis lookup record %s", self._key(key))
            return None
        return CacheEntry.from_dict(decoded)

    def put(self, key: LookupKey, entry: CacheEntry) -> None:
        payload = json.dumps(entry.to_dict(), ensure_ascii=False)
        ex = int(self.ttl_sec) if self.ttl_sec else None
        self._client_factory().set(self._key(key), payload, ex=ex)

    def ping(self) -> bool:
        return bool(self._client_factory().ping())


class MemoryLookupStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.entries: Dict[str, CacheEntry] = {}
        self.reads = 0
        self.writes = 0

    def get(self, key: LookupKey) -> Optional[CacheEntry]:
        with self._lock:
            self.reads += 1
            return self.entries.get(key.composite())

    def put(self, key: LookupKey, entry: CacheEntry) -> None:
        with self._lock:
            self.writes += 1
            self.entries[key.composite()] = entry

    def ping(self) -> bool:
        return True


def build_remote_store(
    backend: str,
    kind: str,
    *,
    namespace: str,
    supabase_url: str = "",
    supabase_key: str = "",
    redis_url: str = "",
    redis_prefix: str = "eduquest:lookup",
    ttl_sec: Optional[float] = None,
) -> Optional[Any]:
    name = str(backend or BACKEND_NONE).strip().lower()
    if name == BACKEND_SUPABASE:
        if not supabase_url or not supabase_key:
            _log.warning("LOOKUP_REMOTE_BACKEND=supabase but SUPABASE_URL/SUPABASE_KEY are missing; remote tier disabled")
            return None
        from .store_clients import get_supabase_client

        return SupabaseLookupStore(kind, lambda: get_supabase_client(supabase_url, supabase_key))
    if name == BACKEND_REDIS:
        from .store_clients import get_redis_client

        url = redis_url or "redis://localhost:6379/0"
        return RedisLookupStore(namespace, lambda: get_redis_client(url), prefix=redis_prefix, ttl_sec=ttl_sec)
    if name == BACKEND_MEMORY:
        return MemoryLookupStore()
    if name != BACKEND_NONE:
        _log.warning("unknown LOOKUP_REMOTE_BACKEND=%s; remote tier disabled", backend)
    return None
