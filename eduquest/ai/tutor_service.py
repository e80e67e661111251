from __future__ import annotations

from typing import Any, Optional

from llm_gateway import parse_data_url

from .capability_deps import CapabilityDeps, run_capability
from .credentials import UserKeys
from .errors import MalformedResponseError
from .prompt_builder import build_doubt_request, build_study_guide_request, build_teacher_doubt_request


def _markdown(call: Any, req: Any) -> str:
    text = str(call.generate(req).text or "").strip()
    if not text:
        raise MalformedResponseError("AI returned an empty answer.", provider=call.provider)
    return text


def _image_or_none(image_data_url: Optional[str]):
    if not image_data_url:
        return None
    return parse_data_url(image_data_url, default_mime="image/png")


def answer_doubt(
    class_num: int,
    lang: str,
    text: Optional[str] = None,
    image_data_url: Optional[str] = None,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> str:
    req = build_doubt_request(class_num, lang, text, _image_or_none(image_data_url))
    return run_capability(deps, keys, "AI Tutor", lambda call: _markdown(call, req), cancel=cancel)


def answer_teacher_doubt(
    class_num: int,
    lang: str,
    text: Optional[str] = None,
    image_data_url: Optional[str] = None,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> str:
    req = build_teacher_doubt_request(class_num, lang, text, _image_or_none(image_data_url))
    return run_capability(deps, keys, "AI Teacher Tutor", lambda call: _markdown(call, req), cancel=cancel)


def generate_study_guide(
    chapter: str,
    class_num: int,
    topic: str,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> str:
    req = build_study_guide_request(chapter, class_num, topic, lang)
    return run_capability(deps, keys, "Study Guide Generation", lambda call: _markdown(call, req), cancel=cancel)
