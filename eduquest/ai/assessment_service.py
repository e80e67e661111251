from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .capability_deps import CapabilityDeps, run_capability
from .credentials import UserKeys
from .criteria import AttemptQuestion, weaknesses_from_attempts
from .errors import MalformedResponseError
from .prompt_builder import (
    as_string_list,
    build_analysis_request,
    build_flashcards_request,
    build_practice_sets_request,
)

_log = logging.getLogger(__name__)


def _structured(call: Any, req: Any, expected: type) -> Any:
    data = call.generate(req).data
    if not isinstance(data, expected):
        raise MalformedResponseError(
            f"AI response was not in the expected {expected.__name__} format.", provider=call.provider
        )
    return data


def _answers_by_question(student_answers: List[Dict[str, Any]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in student_answers or []:
        qid = str(item.get("question_id") or item.get("questionId") or "")
        if qid:
            out[qid] = str(item.get("answer") or "")
    return out


def analyze_test_attempt(
    questions: List[Dict[str, Any]],
    student_answers: List[Dict[str, Any]],
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    attempt_questions = [
        AttemptQuestion(
            id=str(q.get("id") or ""),
            text=str(q.get("text") or ""),
            chapter=str(q.get("chapter") or ""),
            answer=q.get("answer"),
        )
        for q in questions or []
    ]
    req = build_analysis_request(attempt_questions, _answers_by_question(student_answers), lang)
    data = run_capability(deps, keys, "Test Analysis", lambda call: _structured(call, req, dict), cancel=cancel)
    return {
        "strengths": as_string_list(data.get("strengths")),
        "weaknesses": as_string_list(data.get("weaknesses")),
        "summary": str(data.get("summary") or ""),
    }


def generate_flashcards(
    chapter: str,
    class_num: int,
    count: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[Dict[str, str]]:
    req = build_flashcards_request(chapter, class_num, count, lang)
    data = run_capability(deps, keys, "Flashcard Generation", lambda call: _structured(call, req, list), cancel=cancel)
    cards = []
    for item in data:
        if isinstance(item, dict) and item.get("question") and item.get("answer"):
            cards.append({"question": str(item["question"]), "answer": str(item["answer"])})
    return cards


def suggest_practice_sets(
    attempts: List[Dict[str, Any]],
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[Dict[str, str]]:
    weaknesses = weaknesses_from_attempts(attempts)
    if not weaknesses:
        _log.debug("no analysed weaknesses; skipping practice set suggestion")
        return []
    req = build_practice_sets_request(weaknesses, class_num, lang)
    data = run_capability(
        deps, keys, "Practice Set Suggestion", lambda call: _structured(call, req, list), cancel=cancel
    )
    suggestions = []
    for item in data:
        if not isinstance(item, dict):
            continue
        suggestions.append(
            {
                "chapter": str(item.get("chapter") or ""),
                "topic": str(item.get("topic") or ""),
                "reason": str(item.get("reason") or ""),
            }
        )
    return suggestions
