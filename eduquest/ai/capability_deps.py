from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from llm_gateway import LLMGateway

from . import config
from .credentials import Credential, UserKeys, credentials_for_user
from .lookup_cache import LocalLookupStore, TwoTierLookupCache
from .lookup_stores import KIND_CHAPTERS, KIND_SUBJECTS, build_remote_store
from .provider_chain import OperationDescriptor, execute_with_fallbacks


@dataclass(frozen=True)
class CapabilityDeps:
    gateway: Any
    system_key: Optional[str]
    system_provider: str
    operation_timeout_sec: float
    paper_timeout_sec: float
    pdf_timeout_sec: float
    max_attempts: int
    batch_max_concurrency: int
    subjects_cache: TwoTierLookupCache
    chapters_cache: TwoTierLookupCache
    sleep: Optional[Callable[[float, Any], None]] = None

    def credentials(self, keys: Optional[UserKeys]) -> List[Credential]:
        return credentials_for_user(keys, self.system_key, self.system_provider)

    def operation(self, name: str, cancel: Any = None, *, timeout_sec: Optional[float] = None) -> OperationDescriptor:
        return OperationDescriptor(
            name=name,
            timeout_sec=float(timeout_sec if timeout_sec is not None else self.operation_timeout_sec),
            max_attempts=self.max_attempts,
            cancel=cancel,
        )


def _build_cache(namespace: str, kind: str) -> TwoTierLookupCache:
    remote = build_remote_store(
        config.LOOKUP_REMOTE_BACKEND,
        kind,
        namespace=namespace,
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_KEY,
        redis_url=config.REDIS_URL,
        redis_prefix=config.LOOKUP_REDIS_PREFIX,
        ttl_sec=config.LOOKUP_REMOTE_TTL_SEC,
    )
    return TwoTierLookupCache(
        LocalLookupStore.in_dir(namespace, config.LOOKUP_CACHE_DIR),
        remote,
        local_ttl_sec=config.LOOKUP_LOCAL_TTL_SEC,
        remote_ttl_sec=config.LOOKUP_REMOTE_TTL_SEC,
    )


def build_default_deps(gateway: Any = None) -> CapabilityDeps:
    return CapabilityDeps(
        gateway=gateway or LLMGateway(config.MODEL_REGISTRY_PATH),
        system_key=config.SYSTEM_FALLBACK_API_KEY,
        system_provider=config.SYSTEM_FALLBACK_PROVIDER,
        operation_timeout_sec=config.AI_OPERATION_TIMEOUT_SEC,
        paper_timeout_sec=config.AI_PAPER_TIMEOUT_SEC,
        pdf_timeout_sec=config.AI_PDF_TIMEOUT_SEC,
        max_attempts=config.AI_MAX_RETRIES,
        batch_max_concurrency=config.AI_BATCH_MAX_CONCURRENCY,
        subjects_cache=_build_cache(config.SUBJECTS_CACHE_NAMESPACE, KIND_SUBJECTS),
        chapters_cache=_build_cache(config.CHAPTERS_CACHE_NAMESPACE, KIND_CHAPTERS),
    )


def run_capability(
    deps: CapabilityDeps,
    keys: Optional[UserKeys],
    name: str,
    run: Callable[[Any], Any],
    *,
    cancel: Any = None,
    timeout_sec: Optional[float] = None,
    credentials: Optional[List[Credential]] = None,
) -> Any:
    creds = credentials if credentials is not None else deps.credentials(keys)
    op = deps.operation(name, cancel, timeout_sec=timeout_sec)
    return execute_with_fallbacks(creds, run, op, gateway=deps.gateway, sleep=deps.sleep)
