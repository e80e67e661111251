from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..capability_deps import CapabilityDeps

_log = logging.getLogger(__name__)


def _check_remote_tier(name: str, cache: Any) -> Dict[str, Any]:
    remote = getattr(cache, "remote", None)
    if remote is None:
        return {"status": "skipped", "reason": "no_remote_tier"}
    ping = getattr(remote, "ping", None)
    if not callable(ping):
        return {"status": "skipped", "reason": "no_ping"}
    try:
        ping()
        return {"status": "ok"}
    except Exception as exc:
        _log.warning("health: %s remote tier check failed", name, exc_info=True)
        return {"status": "error", "detail": str(exc)}


def build_router(deps: CapabilityDeps) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health():
        checks = {
            "subjects_cache": _check_remote_tier("subjects", deps.subjects_cache),
            "chapters_cache": _check_remote_tier("chapters", deps.chapters_cache),
            "system_key": {"status": "ok" if deps.system_key else "skipped"},
        }
        degraded = any(c.get("status") not in ("ok", "skipped") for c in checks.values())
        payload = {"status": "degraded" if degraded else "ok", "checks": checks}
        return JSONResponse(content=payload, status_code=503 if degraded else 200)

    return router
