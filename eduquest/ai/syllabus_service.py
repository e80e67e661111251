from __future__ import annotations

import logging
from typing import Any, List, Optional

from .capability_deps import CapabilityDeps, run_capability
from .constants import DEFAULT_CHAPTERS, DEFAULT_SUBJECTS
from .credentials import UserKeys
from .errors import AiServiceError, MalformedResponseError, OperationCancelled
from .lookup_cache import LookupKey
from .prompt_builder import build_chapters_request, build_subjects_request

_log = logging.getLogger(__name__)


def _string_list_from(call: Any, req: Any) -> List[str]:
    resp = call.generate(req)
    data = resp.data
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise MalformedResponseError(f"Invalid format from {call.provider}.", provider=call.provider)
    return [item.strip() for item in data if item.strip()]


def get_subjects(
    board: str,
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[str]:
    key = LookupKey(board=board, class_num=int(class_num), lang=lang)
    req = build_subjects_request(board, class_num, lang)

    def _generate() -> List[str]:
        return run_capability(
            deps, keys, "Subject List Generation", lambda call: _string_list_from(call, req), cancel=cancel
        )

    try:
        subjects = deps.subjects_cache.lookup(key, _generate)
    except OperationCancelled:
        raise
    except AiServiceError as exc:
        _log.warning("All AI options failed for subjects (%s): %s. Returning default list.", key.composite(), exc)
        return list(DEFAULT_SUBJECTS)
    return subjects or list(DEFAULT_SUBJECTS)


def get_chapters(
    board: str,
    class_num: int,
    subject: str,
    lang: str,
    semester: Optional[str] = None,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[str]:
    """Chapter names for one subject; falls back to the built-in list for the class."""
    key = LookupKey(board=board, class_num=int(class_num), lang=lang, subject=subject, semester=semester or None)
    req = build_chapters_request(board, class_num, subject, lang, semester)

    def _generate() -> List[str]:
        return run_capability(
            deps, keys, "Chapter List Generation", lambda call: _string_list_from(call, req), cancel=cancel
        )

    try:
        chapters = deps.chapters_cache.lookup(key, _generate)
    except OperationCancelled:
        raise
    except AiServiceError as exc:
        _log.warning("All AI options failed for chapters (%s): %s", key.composite(), exc)
        chapters = []
    if chapters:
        return chapters
    fallback = DEFAULT_CHAPTERS.get(int(class_num))
    if fallback:
        _log.warning("Falling back to default chapters for class %s.", class_num)
        return list(fallback)
    _log.warning("No default chapters for class %s. Returning empty list.", class_num)
    return []
