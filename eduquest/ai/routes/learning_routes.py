from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..api_models import (
    DiagramGradeRequest,
    DiagramSuggestionRequest,
    DoubtRequest,
    FlashcardsRequest,
    PracticeSetsRequest,
    StudyGuideRequest,
    TestAnalysisRequest,
)
from ..capability_deps import CapabilityDeps
from ..credentials import UserKeys
from .. import assessment_service, diagram_service, tutor_service
from .route_helpers import call_capability, user_keys


def build_router(deps: CapabilityDeps) -> APIRouter:
    router = APIRouter(prefix="/ai")

    @router.post("/test-analysis")
    async def test_analysis(req: TestAnalysisRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        return await call_capability(
            request,
            assessment_service.analyze_test_attempt,
            [q.model_dump() for q in req.questions],
            [a.model_dump() for a in req.student_answers],
            req.lang,
            keys,
            deps=deps,
        )

    @router.post("/flashcards")
    async def flashcards(req: FlashcardsRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        cards = await call_capability(
            request, assessment_service.generate_flashcards, req.chapter, req.class_num, req.count, req.lang, keys, deps=deps
        )
        return {"flashcards": cards}

    @router.post("/practice-sets")
    async def practice_sets(req: PracticeSetsRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        suggestions = await call_capability(
            request, assessment_service.suggest_practice_sets, req.attempts, req.class_num, req.lang, keys, deps=deps
        )
        return {"suggestions": suggestions}

    @router.post("/diagrams/suggest")
    async def suggest_diagrams(req: DiagramSuggestionRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        diagrams = await call_capability(
            request,
            diagram_service.suggest_diagrams,
            req.chapter,
            req.class_num,
            req.lang,
            keys,
            deps=deps,
            render_images=req.render_images,
        )
        return {"diagrams": diagrams}

    @router.post("/diagrams/grade")
    async def grade_diagram(req: DiagramGradeRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        return await call_capability(
            request,
            diagram_service.grade_diagram,
            req.reference_image_prompt,
            req.drawing_data_url,
            req.lang,
            keys,
            deps=deps,
        )

    @router.post("/tutor/student")
    async def answer_doubt(req: DoubtRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        answer = await call_capability(
            request, tutor_service.answer_doubt, req.class_num, req.lang, req.text, req.image_data_url, keys, deps=deps
        )
        return {"answer": answer}

    @router.post("/tutor/teacher")
    async def answer_teacher_doubt(req: DoubtRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        answer = await call_capability(
            request,
            tutor_service.answer_teacher_doubt,
            req.class_num,
            req.lang,
            req.text,
            req.image_data_url,
            keys,
            deps=deps,
        )
        return {"answer": answer}

    @router.post("/study-guide")
    async def study_guide(req: StudyGuideRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        guide = await call_capability(
            request,
            tutor_service.generate_study_guide,
            req.chapter,
            req.class_num,
            req.topic,
            req.lang,
            keys,
            deps=deps,
        )
        return {"guide": guide}

    return router
