"""Shared fakes for capability tests: scripted adapters, a recording gateway, deps."""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from eduquest.ai.capability_deps import CapabilityDeps
from eduquest.ai.lookup_cache import LocalLookupStore, TwoTierLookupCache
from eduquest.ai.lookup_stores import MemoryLookupStore
from llm_gateway import UnifiedLLMResponse


def response(data: Any = None, text: str = "", grounding: Optional[List[Dict[str, Any]]] = None) -> UnifiedLLMResponse:
    return UnifiedLLMResponse(text=text, data=data, grounding_chunks=list(grounding or []))


class FakeAdapter:
    """Replays `script` for generate() and `images` for generate_image().

    Items may be a value, an exception instance (raised), or a callable taking
    the request/prompt. The last item repeats once the script runs out.
    """

    def __init__(self, provider: str, script: Optional[List[Any]] = None, images: Optional[List[Any]] = None):
        self.provider = provider
        self.script = list(script or [])
        self.images = list(images or [])
        self.requests: List[Any] = []
        self.prompts: List[str] = []
        self.closed = 0
        self._lock = threading.Lock()

    def _next(self, items: List[Any], arg: Any) -> Any:
        with self._lock:
            if not items:
                raise AssertionError(f"{self.provider} adapter called without a scripted reply")
            item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(arg)
        return item

    def generate(self, req: Any) -> Any:
        with self._lock:
            self.requests.append(req)
        return self._next(self.script, req)

    def generate_image(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
        return self._next(self.images, prompt)

    def close(self) -> None:
        self.closed += 1


class FakeGateway:
    # Mirrors the document support declared in config/model_registry.yaml.
    FEATURES = {"gemini": {"documents", "search_grounding"}, "openai": set()}

    def __init__(self, adapters: Optional[Dict[str, FakeAdapter]] = None):
        self.adapters = dict(adapters or {})
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def supports(self, provider: str, feature: str) -> bool:
        return feature in self.FEATURES.get(provider, set())

    def adapter_for(self, credential: Any, cancel: Any = None) -> FakeAdapter:
        with self._lock:
            self.calls.append(credential.display_name)
        return self.adapters[credential.provider]


def no_sleep(_delay: float, _cancel: Any = None) -> None:
    return None


def make_cache(remote: Any = None, clock: Optional[Callable[[], float]] = None) -> TwoTierLookupCache:
    kwargs: Dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    return TwoTierLookupCache(LocalLookupStore("test"), remote, **kwargs)


def make_deps(gateway: Any, *, system_key: Optional[str] = None, **overrides: Any) -> CapabilityDeps:
    values: Dict[str, Any] = dict(
        gateway=gateway,
        system_key=system_key,
        system_provider="gemini",
        operation_timeout_sec=5.0,
        paper_timeout_sec=5.0,
        pdf_timeout_sec=5.0,
        max_attempts=3,
        batch_max_concurrency=3,
        subjects_cache=make_cache(MemoryLookupStore()),
        chapters_cache=make_cache(MemoryLookupStore()),
        sleep=no_sleep,
    )
    values.update(overrides)
    return CapabilityDeps(**values)
