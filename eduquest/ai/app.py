from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .capability_deps import CapabilityDeps, build_default_deps
from .errors import AiServiceError, http_status_for
from .logging_config import configure_logging
from .routes import extraction_routes, health_routes, learning_routes, question_routes, syllabus_routes
from .settings import env_str

_log = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(_app: FastAPI):
    configure_logging()
    deps = getattr(_app.state, "deps", None)
    if deps is not None and not deps.system_key:
        _log.warning("No system fallback key configured; AI calls need a user-supplied key.")
    yield


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AiServiceError)
    async def _ai_error(_request: Request, exc: AiServiceError):
        status = http_status_for(exc)
        if status >= 500:
            _log.warning("AI capability failed (%s): %s", exc.kind, exc.message)
        return JSONResponse(status_code=status, content={"error": exc.kind, "detail": exc.message})

    @app.exception_handler(ValueError)
    async def _bad_input(_request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": "invalid_input", "detail": str(exc)})


def create_app(deps: Optional[CapabilityDeps] = None) -> FastAPI:
    app_deps = deps or build_default_deps()
    app = FastAPI(title="EduQuest AI", lifespan=app_lifespan)
    origins = [o.strip() for o in env_str("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    for module in (health_routes, question_routes, syllabus_routes, learning_routes, extraction_routes):
        app.include_router(module.build_router(app_deps))
    app.state.deps = app_deps
    return app

