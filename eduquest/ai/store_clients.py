from __future__ import annotations

import threading
from typing import Dict, Tuple

import redis
from supabase import Client, create_client

_REDIS_CLIENTS: Dict[Tuple[str, bool], redis.Redis] = {}
_SUPABASE_CLIENTS: Dict[Tuple[str, str], Client] = {}
_LOCK = threading.Lock()


def get_redis_client(url: str, *, decode_responses: bool = True) -> redis.Redis:
    key = (str(url), bool(decode_responses))
    with _LOCK:
        client = _REDIS_CLIENTS.get(key)
        if client is None:
            client = redis.Redis.from_url(str(url), decode_responses=decode_responses)
            _REDIS_CLIENTS[key] = client
    return client


def get_supabase_client(url: str, key: str) -> Client:
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    cache_key = (str(url), str(key))
    with _LOCK:
        client = _SUPABASE_CLIENTS.get(cache_key)
        if client is None:
            client = create_client(url, key)
            _SUPABASE_CLIENTS[cache_key] = client
    return client


def reset_clients() -> None:
    with _LOCK:
        _REDIS_CLIENTS.clear()
        _SUPABASE_CLIENTS.clear()
