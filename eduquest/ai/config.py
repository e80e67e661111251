from __future__ import annotations

from pathlib import Path

from . import settings as _settings

APP_ROOT = Path(__file__).resolve().parents[2]
MODEL_REGISTRY_PATH = Path(_settings.model_registry_path() or (APP_ROOT / "config" / "model_registry.yaml"))

SYSTEM_FALLBACK_API_KEY = _settings.system_fallback_api_key()
SYSTEM_FALLBACK_PROVIDER = _settings.system_fallback_provider()

AI_OPERATION_TIMEOUT_SEC = _settings.ai_operation_timeout_sec()
AI_PAPER_TIMEOUT_SEC = _settings.ai_paper_timeout_sec(AI_OPERATION_TIMEOUT_SEC)
AI_PDF_TIMEOUT_SEC = _settings.ai_pdf_timeout_sec()
AI_MAX_RETRIES = _settings.ai_max_retries()
AI_BATCH_MAX_CONCURRENCY = _settings.ai_batch_max_concurrency()

LOOKUP_LOCAL_TTL_SEC = _settings.lookup_local_ttl_sec()
LOOKUP_REMOTE_TTL_SEC = _settings.lookup_remote_ttl_sec()
_LOOKUP_CACHE_DIR_RAW = _settings.lookup_cache_dir()
LOOKUP_CACHE_DIR = Path(_LOOKUP_CACHE_DIR_RAW) if _LOOKUP_CACHE_DIR_RAW else None
LOOKUP_REMOTE_BACKEND = _settings.lookup_remote_backend()
LOOKUP_REDIS_PREFIX = _settings.lookup_redis_prefix()

SUPABASE_URL = _settings.supabase_url()
SUPABASE_KEY = _settings.supabase_key()
REDIS_URL = _settings.redis_url()

# Local-tier namespaces; the version suffix is bumped when the stored shape changes.
SUBJECTS_CACHE_NAMESPACE = "eduquest_subjects_cache_v1"
CHAPTERS_CACHE_NAMESPACE = "eduquest_chapters_cache_v3"
