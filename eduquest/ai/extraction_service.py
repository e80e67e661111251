from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from llm_gateway import InlineBlob, parse_data_url

from .capability_deps import CapabilityDeps, run_capability
from .credentials import UserKeys
from .errors import MalformedResponseError, RateLimitedError
from .prompt_builder import (
    build_image_extraction_request,
    build_pdf_extraction_request,
    build_text_extraction_request,
)
from .provider_chain import require_feature

_log = logging.getLogger(__name__)

PDF_QUOTA_MESSAGE = "PDF processing failed due to API quota limits. Please check your key in Settings or try again later."


def _extracted_questions(call: Any, req: Any) -> List[Dict[str, Any]]:
    data = call.generate(req).data
    if not isinstance(data, list):
        raise MalformedResponseError("AI response was not in the expected array format.", provider=call.provider)
    questions: List[Dict[str, Any]] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        question: Dict[str, Any] = {"text": text}
        marks = item.get("marks")
        if isinstance(marks, (int, float)) and not isinstance(marks, bool):
            question["marks"] = marks
        questions.append(question)
    return questions


def extract_questions_from_image(
    image_data_url: str,
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[Dict[str, Any]]:
    req = build_image_extraction_request(parse_data_url(image_data_url, default_mime="image/png"), class_num, lang)
    return run_capability(
        deps, keys, "Image Question Extraction", lambda call: _extracted_questions(call, req), cancel=cancel
    )


def extract_questions_from_pdf(
    pdf_data_url: str,
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[Dict[str, Any]]:
    """PDF input needs native document support; only credentials whose provider has it are tried."""
    credentials = require_feature(
        deps.credentials(keys), "documents", "PDF question extraction", gateway=deps.gateway
    )
    document = parse_data_url(pdf_data_url, default_mime="application/pdf")
    document = InlineBlob(mime_type="application/pdf", data=document.data)
    req = build_pdf_extraction_request(document, class_num, lang)
    try:
        questions = run_capability(
            deps,
            keys,
            "PDF Question Extraction",
            lambda call: _extracted_questions(call, req),
            cancel=cancel,
            timeout_sec=deps.pdf_timeout_sec,
            credentials=credentials,
        )
    except RateLimitedError as exc:
        raise RateLimitedError(PDF_QUOTA_MESSAGE, provider=exc.provider, status_code=exc.status_code) from exc
    _log.info("extracted %d question(s) from PDF", len(questions))
    return questions


def extract_questions_from_text(
    text: str,
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> List[Dict[str, Any]]:
    req = build_text_extraction_request(text, class_num, lang)
    return run_capability(
        deps, keys, "Text Question Extraction", lambda call: _extracted_questions(call, req), cancel=cancel
    )
