from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..api_models import ImageExtractionRequest, PdfExtractionRequest, TextExtractionRequest
from ..capability_deps import CapabilityDeps
from ..credentials import UserKeys
from .. import extraction_service
from .route_helpers import call_capability, user_keys


def build_router(deps: CapabilityDeps) -> APIRouter:
    router = APIRouter(prefix="/ai/extract")

    @router.post("/image")
    async def from_image(req: ImageExtractionRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        found = await call_capability(
            request, extraction_service.extract_questions_from_image, req.image_data_url, req.class_num, req.lang, keys, deps=deps
        )
        return {"questions": found}

    @router.post("/pdf")
    async def from_pdf(req: PdfExtractionRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        found = await call_capability(
            request, extraction_service.extract_questions_from_pdf, req.pdf_data_url, req.class_num, req.lang, keys, deps=deps
        )
        return {"questions": found}

    @router.post("/text")
    async def from_text(req: TextExtractionRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        found = await call_capability(
            request, extraction_service.extract_questions_from_text, req.text, req.class_num, req.lang, keys, deps=deps
        )
        return {"questions": found}

    return router
