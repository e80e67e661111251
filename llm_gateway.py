from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type
import json
import logging
import os
import re
from functools import lru_cache

import requests
import yaml

from eduquest.ai.abortable_http import abort_session, abortable_session
from eduquest.ai.cancellation import is_cancelled, subscribe
from eduquest.ai.credentials import Credential
from eduquest.ai.errors import (
    MalformedResponseError,
    OperationCancelled,
    UnsupportedFeatureError,
    classify_provider_error,
)

_log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_REGISTRY_PATH = PROJECT_ROOT / "config" / "model_registry.yaml"

TIER_FAST = "fast"
TIER_PRO = "pro"
TIER_VISION = "vision"
TIER_IMAGE = "image"


@dataclass(frozen=True)
class InlineBlob:
    mime_type: str
    data: str = field(repr=False)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def parse_data_url(data_url: str, default_mime: str = "application/octet-stream") -> InlineBlob:
    """Split a `data:<mime>;base64,<payload>` URL into an InlineBlob."""
    text = str(data_url or "").strip()
    header, sep, payload = text.partition(",")
    if not sep or not payload:
        raise ValueError("invalid data URL; could not extract base64 data")
    mime = default_mime
    if header.startswith("data:"):
        mime = header[5:].split(";", 1)[0] or default_mime
    return InlineBlob(mime_type=mime, data=payload)


@dataclass
class UnifiedLLMRequest:
    prompt: str
    images: List[InlineBlob] = field(default_factory=list)
    documents: List[InlineBlob] = field(default_factory=list)
    json_schema: Optional[Dict[str, Any]] = None
    # Object key that carries array results for providers limited to JSON objects.
    wrap_key: Optional[str] = None
    model_tier: str = TIER_FAST
    temperature: Optional[float] = None
    use_search: bool = False


@dataclass
class UnifiedLLMResponse:
    text: str
    data: Any = None
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)
    usage: Dict[str, Any] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Target:
    provider: str
    mode: str
    models: Dict[str, str]
    base_url: str
    endpoints: Dict[str, str]
    headers: Dict[str, str]
    timeout_sec: Tuple[float, float]
    options: Dict[str, Any] = field(default_factory=dict)

    def model_for(self, tier: str) -> str:
        return self.models.get(tier) or self.models.get(TIER_FAST) or ""

    def url_for(self, endpoint_key: str, model: str) -> str:
        endpoint = self.endpoints.get(endpoint_key) or ""
        return f"{self.base_url}{endpoint.format(model=model)}"


def _load_registry(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=8)
def _load_registry_cached(path_str: str) -> Dict[str, Any]:
    # Registry edits take effect on process restart.
    return _load_registry(Path(path_str))


def _clamp_timeout_seconds(value: Any, *, default: float, min_value: float = 1.0, max_value: float = 600.0) -> float:
    try:
        parsed = float(value)
    except Exception:
        parsed = float(default)
    if parsed <= 0:
        parsed = float(default)
    return min(max_value, max(min_value, parsed))


def _build_timeout_pair(*, default_timeout_sec: Any, connect_value: Any = None) -> Tuple[float, float]:
    read_timeout = _clamp_timeout_seconds(default_timeout_sec, default=120.0)
    connect_timeout = _clamp_timeout_seconds(connect_value, default=min(10.0, read_timeout), max_value=120.0)
    return (min(connect_timeout, read_timeout), read_timeout)


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def parse_llm_json(content: str) -> Any:
    """Parse model output as JSON, falling back to the first fenced block."""
    if not content:
        return None
    text = content.strip()
    try:
        return json.loads(text)
    except Exception:
        _log.debug("direct JSON parse failed, trying markdown block", exc_info=True)
    match = _FENCED_JSON.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(1).strip())
    except Exception:
        _log.debug("fenced JSON parse failed for: %.200s", match.group(1))
        return None


_GEMINI_TYPES = {"object", "array", "string", "number", "integer", "boolean"}


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a lower-case JSON schema into Gemini's OpenAPI subset."""
    out: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and str(value).lower() in _GEMINI_TYPES:
            out["type"] = str(value).upper()
        elif key == "properties" and isinstance(value, dict):
            out["properties"] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items" and isinstance(value, dict):
            out["items"] = to_gemini_schema(value)
        elif key in {"required", "description", "enum"}:
            out[key] = value
    return out


def schema_instructions(schema: Dict[str, Any], wrap_key: Optional[str]) -> str:
    rendered = json.dumps(schema, ensure_ascii=False)
    if wrap_key:
        return (
            f'\n\nReturn ONLY a single valid JSON object with a single key "{wrap_key}" '
            f"whose value matches this JSON schema: {rendered}"
        )
    return f"\n\nReturn ONLY a single valid JSON object matching this JSON schema: {rendered}"


class _HttpAdapter:
    def __init__(self, target: Target, session: requests.Session, cancel: Any = None):
        self.target = target
        self.session = session
        self.cancel = cancel
        self._remove_listener = subscribe(cancel, lambda: abort_session(self.session))

    @property
    def provider(self) -> str:
        return self.target.provider

    def close(self) -> None:
        self._remove_listener()
        self.session.close()

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if is_cancelled(self.cancel):
            raise OperationCancelled(self.provider)
        try:
            resp = self.session.post(url, headers=self.target.headers, json=payload, timeout=self.target.timeout_sec)
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            if is_cancelled(self.cancel):
                raise OperationCancelled(self.provider) from exc
            raise classify_provider_error(exc, self.provider) from exc
        # A reply that lands after cancellation is discarded.
        if is_cancelled(self.cancel):
            raise OperationCancelled(self.provider)
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.provider} returned a non-object body", provider=self.provider)
        return data

    def _parse_structured(self, text: str) -> Any:
        data = parse_llm_json(text)
        if data is None:
            raise MalformedResponseError(
                f"AI response from {self.provider} was not valid JSON, even after extraction.",
                provider=self.provider,
            )
        return data

    def generate(self, req: UnifiedLLMRequest) -> UnifiedLLMResponse:
        raise NotImplementedError

    def generate_image(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiNativeAdapter(_HttpAdapter):
    def generate(self, req: UnifiedLLMRequest) -> UnifiedLLMResponse:
        model = self.target.model_for(req.model_tier)
        parts: List[Dict[str, Any]] = [{"text": req.prompt}]
        for blob in list(req.images) + list(req.documents):
            parts.append({"inlineData": {"mimeType": blob.mime_type, "data": blob.data}})
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        generation_config: Dict[str, Any] = {}
        if req.temperature is not None:
            generation_config["temperature"] = req.temperature
        if req.use_search:
            # Search grounding cannot be combined with a response schema.
            payload["tools"] = [{"google_search": {}}]
        elif req.json_schema:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = to_gemini_schema(req.json_schema)
        if generation_config:
            payload["generationConfig"] = generation_config

        data = self._post(self.target.url_for("generate", model), payload)
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise MalformedResponseError(
                f"gemini returned no candidates (blockReason={feedback.get('blockReason', 'unknown')})",
                provider=self.provider,
            )
        first = candidates[0] or {}
        texts = [p.get("text", "") for p in (first.get("content") or {}).get("parts") or [] if p.get("text")]
        text = "".join(texts).strip()
        grounding = (first.get("groundingMetadata") or {}).get("groundingChunks") or []
        parsed = self._parse_structured(text) if req.json_schema else None
        return UnifiedLLMResponse(
            text=text,
            data=parsed,
            grounding_chunks=list(grounding),
            usage=data.get("usageMetadata", {}),
            finish_reason=first.get("finishReason"),
            raw=data,
        )

    def generate_image(self, prompt: str) -> str:
        model = self.target.model_for(TIER_IMAGE)
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "outputMimeType": "image/png"},
        }
        data = self._post(self.target.url_for("image", model), payload)
        predictions = data.get("predictions") or []
        image_b64 = (predictions[0] or {}).get("bytesBase64Encoded") if predictions else None
        if not image_b64:
            raise MalformedResponseError(
                "AI failed to generate a valid image from the provided prompt.", provider=self.provider
            )
        return str(image_b64)


class OpenAIChatAdapter(_HttpAdapter):
    def generate(self, req: UnifiedLLMRequest) -> UnifiedLLMResponse:
        if req.documents:
            raise UnsupportedFeatureError(
                "Document input (PDF) is not supported by the OpenAI provider.", provider=self.provider
            )
        tier = TIER_VISION if req.images else req.model_tier
        prompt = req.prompt
        if req.json_schema:
            prompt += schema_instructions(req.json_schema, req.wrap_key)
        if req.images:
            content: Any = [{"type": "text", "text": prompt}]
            for blob in req.images:
                content.append({"type": "image_url", "image_url": {"url": blob.to_data_url()}})
        else:
            content = prompt
        temperature = req.temperature if req.temperature is not None else self.target.options.get("temperature", 0.5)
        payload: Dict[str, Any] = {
            "model": self.target.model_for(tier),
            "messages": [{"role": "user", "content": content}],
            "temperature": temperature,
        }
        if req.json_schema:
            payload["response_format"] = {"type": "json_object"}

        data = self._post(self.target.url_for("generate", ""), payload)
        choice = (data.get("choices") or [{}])[0] or {}
        text = str((choice.get("message") or {}).get("content") or "")
        parsed = None
        if req.json_schema:
            parsed = self._parse_structured(text)
            if req.wrap_key and isinstance(parsed, dict):
                parsed = parsed.get(req.wrap_key, [])
        return UnifiedLLMResponse(
            text=text,
            data=parsed,
            usage=data.get("usage", {}),
            finish_reason=choice.get("finish_reason"),
            raw=data,
        )

    def generate_image(self, prompt: str) -> str:
        payload = {
            "model": self.target.model_for(TIER_IMAGE),
            "prompt": prompt,
            "n": 1,
            "size": self.target.options.get("image_size", "1024x1024"),
            "response_format": "b64_json",
        }
        data = self._post(self.target.url_for("image", ""), payload)
        items = data.get("data") or []
        image_b64 = (items[0] or {}).get("b64_json") if items else None
        if not image_b64:
            raise MalformedResponseError("OpenAI image generation returned no image data.", provider=self.provider)
        return str(image_b64)


ADAPTERS: Dict[str, Type[_HttpAdapter]] = {
    "gemini-native": GeminiNativeAdapter,
    "openai-chat": OpenAIChatAdapter,
}


class LLMGateway:
    def __init__(
        self,
        registry_path: Optional[Path] = None,
        session_factory: Callable[[], requests.Session] = abortable_session,
    ):
        path = Path(registry_path or os.getenv("MODEL_REGISTRY_PATH") or DEFAULT_REGISTRY_PATH)
        self.registry = _load_registry_cached(str(path))
        self._session_factory = session_factory

    def provider_config(self, provider: str) -> Dict[str, Any]:
        providers = self.registry.get("providers") or {}
        cfg = providers.get(provider)
        if not isinstance(cfg, dict):
            raise UnsupportedFeatureError(f"Provider not configured in model registry: {provider}", provider=provider)
        return cfg

    def supports(self, provider: str, feature: str) -> bool:
        try:
            cfg = self.provider_config(provider)
        except UnsupportedFeatureError:
            return False
        return bool((cfg.get("supports") or {}).get(feature))

    def resolve_target(self, credential: Credential) -> Target:
        defaults = self.registry.get("defaults", {}) if isinstance(self.registry.get("defaults"), dict) else {}
        prov_cfg = self.provider_config(credential.provider)

        base_url = os.getenv(prov_cfg.get("base_url_env", "") or "") or prov_cfg.get("base_url") or ""
        if not base_url:
            raise ValueError(f"Base URL not configured for provider={credential.provider}.")
        endpoints = {str(k): str(v) for k, v in (prov_cfg.get("endpoints") or {}).items()}
        if "generate" not in endpoints:
            raise ValueError(f"Endpoint not configured for provider={credential.provider}.")

        options = {k: v for k, v in prov_cfg.items() if k in {"temperature", "image_size"}}
        return Target(
            provider=credential.provider,
            mode=str(prov_cfg.get("mode") or "openai-chat"),
            models={str(k): str(v) for k, v in (prov_cfg.get("models") or {}).items()},
            base_url=str(base_url).rstrip("/"),
            endpoints=endpoints,
            headers=self._build_headers(prov_cfg, credential.secret),
            timeout_sec=_build_timeout_pair(
                default_timeout_sec=defaults.get("timeout_sec", 120),
                connect_value=defaults.get("connect_timeout_sec"),
            ),
            options=options,
        )

    def _build_headers(self, prov_cfg: Dict[str, Any], api_key: str) -> Dict[str, str]:
        auth = prov_cfg.get("auth", {})
        auth_type = auth.get("type", "bearer")
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if auth_type == "bearer":
            header = auth.get("header", "Authorization")
            prefix = auth.get("prefix", "Bearer ")
            headers[header] = f"{prefix}{api_key}"
        elif auth_type == "x-goog-api-key":
            headers["x-goog-api-key"] = api_key
        else:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def adapter_for(self, credential: Credential, cancel: Any = None) -> _HttpAdapter:
        target = self.resolve_target(credential)
        adapter_cls = ADAPTERS.get(target.mode)
        if adapter_cls is None:
            raise UnsupportedFeatureError(f"No adapter registered for mode={target.mode}", provider=target.provider)
        return adapter_cls(target, self._session_factory(), cancel)


__all__ = [
    "InlineBlob",
    "UnifiedLLMRequest",
    "UnifiedLLMResponse",
    "LLMGateway",
    "GeminiNativeAdapter",
    "OpenAIChatAdapter",
    "parse_data_url",
    "parse_llm_json",
    "to_gemini_schema",
]
