from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import ANSWER_REQUIRED_TYPES, QT_IMAGE_BASED, QT_SHORT_ANSWER


@dataclass(frozen=True)
class QuestionCriteria:
    class_num: int
    chapter: str
    marks: int
    difficulty: str
    count: int
    question_type: Optional[str] = None
    keywords: str = ""
    generate_answer: bool = False
    board_syllabus_only: bool = False
    lang: str = "en"
    use_search_grounding: bool = False
    subject: Optional[str] = None

    @property
    def answer_required(self) -> bool:
        return bool(self.generate_answer) or (self.question_type or "") in ANSWER_REQUIRED_TYPES

    @property
    def is_image_based(self) -> bool:
        return self.question_type == QT_IMAGE_BASED


@dataclass(frozen=True)
class DistributionRow:
    count: int
    marks: int


@dataclass(frozen=True)
class PaperSection:
    count: int
    marks: int
    types: List[str] = field(default_factory=lambda: [QT_SHORT_ANSWER])


@dataclass(frozen=True)
class PaperCriteria:
    class_num: int
    subject: str
    chapters: List[str]
    difficulty: str
    distribution: List[DistributionRow]
    question_types: List[str] = field(default_factory=list)
    keywords: str = ""
    generate_answer: bool = False
    board_syllabus_only: bool = False
    lang: str = "en"
    use_search_grounding: bool = False


@dataclass(frozen=True)
class AttemptQuestion:
    id: str
    text: str
    chapter: str = ""
    answer: Optional[str] = None


def existing_question_texts(existing: Optional[List[Any]]) -> List[str]:
    """Accept question dicts or plain strings from callers."""
    texts: List[str] = []
    for item in existing or []:
        if isinstance(item, dict):
            text = str(item.get("text") or "").strip()
        else:
            text = str(getattr(item, "text", item) or "").strip()
        if text:
            texts.append(text)
    return texts


def weaknesses_from_attempts(attempts: List[Dict[str, Any]]) -> List[str]:
    """Unique weaknesses across analysed attempts, in first-seen order.

    Attempts without an object `analysis`, or whose `weaknesses` is not a list,
    contribute nothing.
    """
    seen: List[str] = []
    for attempt in attempts or []:
        analysis = attempt.get("analysis") if isinstance(attempt, dict) else None
        weaknesses = analysis.get("weaknesses") if isinstance(analysis, dict) else None
        if not isinstance(weaknesses, list):
            continue
        for weakness in weaknesses:
            if not isinstance(weakness, (str, int, float)) or isinstance(weakness, bool):
                continue
            text = str(weakness).strip()
            if text and text not in seen:
                seen.append(text)
    return seen
