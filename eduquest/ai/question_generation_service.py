from __future__ import annotations

import functools
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from .capability_deps import CapabilityDeps, run_capability
from .cancellation import is_cancelled
from .constants import QT_IMAGE_BASED, QT_SHORT_ANSWER
from .credentials import UserKeys
from .criteria import DistributionRow, PaperCriteria, PaperSection, QuestionCriteria, existing_question_texts
from .errors import MalformedResponseError, OperationCancelled
from .prompt_builder import build_image_question_request, build_paper_request, build_questions_request
from .provider_chain import ensure_credentials
from .task_group import run_task_group

_log = logging.getLogger(__name__)


def _normalize_question(item: Any, with_answer: bool, *, keep: Tuple[str, ...] = ()) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return None
    text = str(item.get("text") or "").strip()
    if not text:
        return None
    out: Dict[str, Any] = {"text": text}
    answer = item.get("answer")
    if with_answer and answer not in (None, ""):
        out["answer"] = str(answer)
    for name in keep:
        if item.get(name) not in (None, ""):
            out[name] = item[name]
    return out


def _normalize_questions(data: Any, with_answer: bool, *, keep: Tuple[str, ...] = ()) -> List[Dict[str, Any]]:
    if not isinstance(data, list):
        _log.warning("AI did not return a question array; got %s", type(data).__name__)
        return []
    questions = []
    for item in data:
        normalized = _normalize_question(item, with_answer, keep=keep)
        if normalized is not None:
            questions.append(normalized)
    return questions


def grounding_sources(chunks: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Web sources from search grounding chunks, first occurrence per URI."""
    sources: List[Dict[str, str]] = []
    seen = set()
    for chunk in chunks or []:
        web = (chunk or {}).get("web") if isinstance(chunk, dict) else None
        if not isinstance(web, dict):
            continue
        uri = str(web.get("uri") or "")
        if not uri or uri in seen:
            continue
        seen.add(uri)
        sources.append({"uri": uri, "title": str(web.get("title") or "")})
    return sources


def generate_questions(
    criteria: QuestionCriteria,
    existing: Optional[List[Any]] = None,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    if criteria.is_image_based:
        return generate_image_questions(criteria, keys, deps=deps, cancel=cancel)

    req = build_questions_request(criteria, existing_question_texts(existing))
    resp = run_capability(deps, keys, "Standard Question Generation", lambda call: call.generate(req), cancel=cancel)
    return {
        "generated_questions": _normalize_questions(resp.data, criteria.answer_required),
        "grounding_chunks": list(resp.grounding_chunks or []),
    }


def _image_question_with_call(call: Any, criteria: QuestionCriteria) -> Dict[str, Any]:
    resp = call.generate(build_image_question_request(criteria))
    data = resp.data if isinstance(resp.data, dict) else {}
    question_text = str(data.get("questionText") or "").strip()
    image_prompt = str(data.get("imagePrompt") or "").strip()
    if not question_text or not image_prompt:
        raise MalformedResponseError(
            "AI failed to generate the question text or image prompt.", provider=call.provider
        )
    image_b64 = call.generate_image(image_prompt)
    question: Dict[str, Any] = {"text": question_text, "image_data_url": f"data:image/png;base64,{image_b64}"}
    answer = str(data.get("answerText") or "").strip()
    if criteria.answer_required and answer:
        question["answer"] = answer
    return question


def generate_image_question(
    criteria: QuestionCriteria,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    """Text, then its illustration, under one budget; both steps are required."""
    return run_capability(
        deps,
        keys,
        "Image-based Question Generation",
        lambda call: _image_question_with_call(call, criteria),
        cancel=cancel,
    )


def generate_image_questions(
    criteria: QuestionCriteria,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    count = max(0, int(criteria.count))
    if count:
        ensure_credentials(deps.credentials(keys))
    tasks = [
        functools.partial(generate_image_question, criteria, keys, deps=deps, cancel=cancel) for _ in range(count)
    ]
    group = run_task_group(
        tasks, max_concurrency=deps.batch_max_concurrency, cancel=cancel, name="image question batch"
    )
    if count and not group.results:
        raise group.failures[0].error
    return {
        "generated_questions": group.results,
        "grounding_chunks": [],
        "requested": count,
        "dropped": group.dropped,
    }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def split_distribution(
    distribution: List[DistributionRow], question_types: List[str]
) -> Tuple[List[PaperSection], List[DistributionRow]]:
    """Split mark rows into text sections and image-question requests."""
    all_types = list(question_types) or [QT_SHORT_ANSWER]
    text_types = [t for t in all_types if t != QT_IMAGE_BASED]
    has_image = QT_IMAGE_BASED in all_types
    rows = [r for r in distribution if r.count > 0 and r.marks > 0]

    sections: List[PaperSection] = []
    image_rows: List[DistributionRow] = []
    for row in rows:
        if has_image and text_types:
            image_count = _round_half_up(row.count / len(all_types))
            text_count = row.count - image_count
            if text_count > 0:
                sections.append(PaperSection(count=text_count, marks=row.marks, types=text_types))
            if image_count > 0:
                image_rows.append(DistributionRow(count=image_count, marks=row.marks))
        elif has_image:
            image_rows.append(DistributionRow(count=row.count, marks=row.marks))
        else:
            sections.append(PaperSection(count=row.count, marks=row.marks, types=text_types))
    return sections, image_rows


def _paper_image_question(criteria: QuestionCriteria, keys: Optional[UserKeys], deps: CapabilityDeps, cancel: Any) -> Dict[str, Any]:
    question = generate_image_question(criteria, keys, deps=deps, cancel=cancel)
    question["chapter"] = criteria.chapter
    question["marks"] = criteria.marks
    return question


def generate_paper(
    criteria: PaperCriteria,
    existing: Optional[List[Any]] = None,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    """Build a paper: one text call for the sections, then image questions in parallel.

    The text call propagates its failure. Each image question that fails is
    dropped and counted in `dropped_image_questions`.
    """
    sections, image_rows = split_distribution(criteria.distribution, criteria.question_types)
    if not sections and not image_rows:
        raise ValueError("Please add at least one question type to the mark distribution.")
    ensure_credentials(deps.credentials(keys))

    questions: List[Dict[str, Any]] = []
    chunks: List[Dict[str, Any]] = []
    existing_texts = existing_question_texts(existing)

    if sections:
        req = build_paper_request(criteria, sections, existing_texts)
        resp = run_capability(
            deps,
            keys,
            "Paper Generation",
            lambda call: call.generate(req),
            cancel=cancel,
            timeout_sec=deps.paper_timeout_sec,
        )
        with_answer = bool(criteria.generate_answer) or any(t != QT_SHORT_ANSWER for s in sections for t in s.types)
        questions.extend(_normalize_questions(resp.data, with_answer, keep=("chapter", "marks")))
        chunks.extend(resp.grounding_chunks or [])

    dropped = 0
    if image_rows:
        if is_cancelled(cancel):
            raise OperationCancelled("Paper Generation")
        chapter = criteria.chapters[0] if criteria.chapters else ""
        tasks = []
        for row in image_rows:
            image_criteria = QuestionCriteria(
                class_num=criteria.class_num,
                chapter=chapter,
                marks=row.marks,
                difficulty=criteria.difficulty,
                count=1,
                question_type=QT_IMAGE_BASED,
                keywords=criteria.keywords,
                generate_answer=criteria.generate_answer,
                board_syllabus_only=criteria.board_syllabus_only,
                lang=criteria.lang,
                subject=criteria.subject,
            )
            tasks.extend(
                functools.partial(_paper_image_question, image_criteria, keys, deps, cancel) for _ in range(row.count)
            )
        group = run_task_group(
            tasks, max_concurrency=deps.batch_max_concurrency, cancel=cancel, name="paper image questions"
        )
        questions.extend(group.results)
        dropped = group.dropped
        if dropped:
            _log.warning("paper generation dropped %d of %d image question(s)", dropped, len(tasks))

    return {
        "questions": questions,
        "grounding_sources": grounding_sources(chunks),
        "dropped_image_questions": dropped,
    }
