from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from llm_gateway import InlineBlob, parse_data_url

from .capability_deps import CapabilityDeps, run_capability
from .credentials import UserKeys
from .errors import AiServiceError, MalformedResponseError, OperationCancelled
from .prompt_builder import (
    as_string_list,
    build_diagram_grade_request,
    build_diagram_suggestions_request,
    image_prompt_for_diagram,
)

_log = logging.getLogger(__name__)


def _suggest_with_call(call: Any, req: Any, render_images: bool) -> List[Dict[str, Any]]:
    data = call.generate(req).data
    if not isinstance(data, list):
        raise MalformedResponseError("AI response was not in the expected array format.", provider=call.provider)
    suggestions: List[Dict[str, Any]] = []
    for item in data:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        suggestions.append(
            {
                "name": str(item.get("name") or ""),
                "description": str(item.get("description") or ""),
                "image_prompt": str(item.get("image_prompt") or ""),
            }
        )
    if not render_images:
        return suggestions
    for suggestion in suggestions:
        prompt = image_prompt_for_diagram(suggestion)
        if not prompt:
            continue
        try:
            image_b64 = call.generate_image(prompt)
        except OperationCancelled:
            raise
        except AiServiceError as exc:
            # Rendering is optional; the text suggestion stands on its own.
            _log.warning("diagram render failed for %r: %s", suggestion["name"], exc)
            continue
        suggestion["image_data_url"] = f"data:image/png;base64,{image_b64}"
    return suggestions


def suggest_diagrams(
    chapter: str,
    class_num: int,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
    render_images: bool = False,
) -> List[Dict[str, Any]]:
    req = build_diagram_suggestions_request(chapter, class_num, lang)
    return run_capability(
        deps,
        keys,
        "Diagram Suggestion",
        lambda call: _suggest_with_call(call, req, render_images),
        cancel=cancel,
    )


def _grade_with_call(call: Any, reference_prompt: str, drawing: InlineBlob, lang: str) -> Dict[str, Any]:
    reference_b64 = call.generate_image(reference_prompt)
    if not reference_b64:
        raise MalformedResponseError("Failed to generate a reference diagram.", provider=call.provider)
    reference = InlineBlob(mime_type="image/png", data=reference_b64)
    data = call.generate(build_diagram_grade_request(reference, drawing, lang)).data
    if not isinstance(data, dict):
        raise MalformedResponseError("AI response was not in the expected object format.", provider=call.provider)
    score = data.get("score")
    return {
        "score": score if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
        "strengths": as_string_list(data.get("strengths")),
        "areas_for_improvement": as_string_list(data.get("areasForImprovement")),
        "feedback": str(data.get("feedback") or ""),
    }


def grade_diagram(
    reference_image_prompt: str,
    drawing_data_url: str,
    lang: str,
    keys: Optional[UserKeys] = None,
    *,
    deps: CapabilityDeps,
    cancel: Any = None,
) -> Dict[str, Any]:
    """Render the reference diagram, then grade the drawing against it."""
    drawing = parse_data_url(drawing_data_url, default_mime="image/png")
    return run_capability(
        deps,
        keys,
        "Diagram Grading",
        lambda call: _grade_with_call(call, reference_image_prompt, drawing, lang),
        cancel=cancel,
    )
