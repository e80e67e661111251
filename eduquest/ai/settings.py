from __future__ import annotations

import os
import logging
_log = logging.getLogger(__name__)

_DAY_SEC = 24 * 60 * 60


def env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default)


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return int(default)


def env_float(name: str, default: float) -> float:
    try:
        return float(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return float(default)


def system_fallback_api_key() -> str:
    return (env_str("API_KEY", "") or env_str("GEMINI_API_KEY", "")).strip()


def system_fallback_provider() -> str:
    value = env_str("SYSTEM_FALLBACK_PROVIDER", "gemini").strip().lower()
    return value if value in {"gemini", "openai"} else "gemini"


def model_registry_path() -> str:
    return env_str("MODEL_REGISTRY_PATH", "")


def ai_operation_timeout_sec() -> float:
    return max(1.0, env_float("AI_OPERATION_TIMEOUT_SEC", 120.0))


def ai_paper_timeout_sec(operation_timeout: float) -> float:
    return max(1.0, env_float("AI_PAPER_TIMEOUT_SEC", operation_timeout * 2))


def ai_pdf_timeout_sec() -> float:
    return max(1.0, env_float("AI_PDF_TIMEOUT_SEC", 300.0))


def ai_max_retries() -> int:
    return max(1, env_int("AI_MAX_RETRIES", 5))


def ai_batch_max_concurrency() -> int:
    return max(1, env_int("AI_BATCH_MAX_CONCURRENCY", 3))


def lookup_local_ttl_sec() -> float:
    return max(0.0, env_float("LOOKUP_LOCAL_TTL_DAYS", 7.0)) * _DAY_SEC


def lookup_remote_ttl_sec() -> float:
    return max(0.0, env_float("LOOKUP_REMOTE_TTL_DAYS", 90.0)) * _DAY_SEC


def lookup_cache_dir() -> str:
    return env_str("LOOKUP_CACHE_DIR", "").strip()


def supabase_url() -> str:
    return env_str("SUPABASE_URL", "").strip()


def supabase_key() -> str:
    return env_str("SUPABASE_KEY", "").strip()


def redis_url() -> str:
    return env_str("REDIS_URL", "redis://localhost:6379/0")


def lookup_remote_backend() -> str:
    value = env_str("LOOKUP_REMOTE_BACKEND", "").strip().lower()
    if value in {"supabase", "redis", "memory", "none"}:
        return value
    return "supabase" if supabase_url() else "none"


def lookup_redis_prefix() -> str:
    return env_str("LOOKUP_REDIS_PREFIX", "eduquest:lookup").strip() or "eduquest:lookup"
