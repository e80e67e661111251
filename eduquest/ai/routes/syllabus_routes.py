from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..capability_deps import CapabilityDeps
from ..credentials import UserKeys
from .. import syllabus_service
from .route_helpers import call_capability, user_keys


def build_router(deps: CapabilityDeps) -> APIRouter:
    router = APIRouter(prefix="/ai")

    @router.get("/subjects")
    async def subjects(request: Request, board: str, class_num: int, lang: str = "en", keys: UserKeys = Depends(user_keys)):
        result = await call_capability(request, syllabus_service.get_subjects, board, class_num, lang, keys, deps=deps)
        return {"subjects": result}

    @router.get("/chapters")
    async def chapters(
        request: Request,
        board: str,
        class_num: int,
        subject: str,
        lang: str = "en",
        semester: Optional[str] = None,
        keys: UserKeys = Depends(user_keys),
    ):
        result = await call_capability(
            request, syllabus_service.get_chapters, board, class_num, subject, lang, semester, keys, deps=deps
        )
        return {"chapters": result}

    return router
