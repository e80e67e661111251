from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..api_models import PaperGenerationRequest, QuestionGenerationRequest
from ..capability_deps import CapabilityDeps
from ..credentials import UserKeys
from ..criteria import DistributionRow, PaperCriteria, QuestionCriteria
from .. import question_generation_service as questions
from .route_helpers import call_capability, user_keys


def build_router(deps: CapabilityDeps) -> APIRouter:
    router = APIRouter(prefix="/ai")

    @router.post("/questions")
    async def generate_questions(req: QuestionGenerationRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        criteria = QuestionCriteria(
            class_num=req.class_num,
            chapter=req.chapter,
            marks=req.marks,
            difficulty=req.difficulty,
            count=req.count,
            question_type=req.question_type,
            keywords=req.keywords,
            generate_answer=req.generate_answer,
            board_syllabus_only=req.board_syllabus_only,
            lang=req.lang,
            use_search_grounding=req.use_search_grounding,
            subject=req.subject,
        )
        return await call_capability(
            request, questions.generate_questions, criteria, req.existing_questions, keys, deps=deps
        )

    @router.post("/paper")
    async def generate_paper(req: PaperGenerationRequest, request: Request, keys: UserKeys = Depends(user_keys)):
        criteria = PaperCriteria(
            class_num=req.class_num,
            subject=req.subject,
            chapters=list(req.chapters),
            difficulty=req.difficulty,
            distribution=[DistributionRow(count=r.count, marks=r.marks) for r in req.distribution],
            question_types=list(req.question_types),
            keywords=req.keywords,
            generate_answer=req.generate_answer,
            board_syllabus_only=req.board_syllabus_only,
            lang=req.lang,
            use_search_grounding=req.use_search_grounding,
        )
        return await call_capability(request, questions.generate_paper, criteria, req.existing_questions, keys, deps=deps)

    return router
