from __future__ import annotations

import pytest

from eduquest.ai.cancellation import CancelSignal
from eduquest.ai.constants import DEFAULT_CHAPTERS, DEFAULT_SUBJECTS
from eduquest.ai.credentials import UserKeys
from eduquest.ai.errors import OperationCancelled, ProviderError
from eduquest.ai.lookup_cache import CacheEntry, LookupKey
from eduquest.ai.lookup_stores import MemoryLookupStore
from eduquest.ai.syllabus_service import get_chapters, get_subjects

from fakes import FakeAdapter, FakeGateway, make_cache, make_deps, response

KEYS = UserKeys(gemini_key="user-gemini")


def test_chapters_end_to_end_fills_both_tiers():
    adapter = FakeAdapter("gemini", [response(["Control and Coordination", "Continuity of Life"])])
    remote = MemoryLookupStore()
    chapters_cache = make_cache(remote)
    deps = make_deps(FakeGateway({"gemini": adapter}), chapters_cache=chapters_cache)

    result = get_chapters("WBBSE", 10, "Life Science", "en", keys=KEYS, deps=deps)

    assert result == ["Control and Coordination", "Continuity of Life"]
    assert len(adapter.requests) == 1
    key = LookupKey("WBBSE", 10, "en", subject="Life Science")
    assert remote.entries["WBBSE-10-Life Science-en"].values == result
    assert chapters_cache.local.get(key).values == result

    # served from the local tier afterwards
    assert get_chapters("WBBSE", 10, "Life Science", "en", keys=KEYS, deps=deps) == result
    assert len(adapter.requests) == 1


def test_chapters_request_mentions_subject_and_semester():
    adapter = FakeAdapter("gemini", [response(["Chapter 1"])])
    deps = make_deps(FakeGateway({"gemini": adapter}))
    get_chapters("WBCHSE", 11, "Biology", "bn", semester="1", keys=KEYS, deps=deps)
    req = adapter.requests[0]
    assert req.wrap_key == "chapters"
    assert "Subject: Biology" in req.prompt
    assert "Semester: 1" in req.prompt
    assert "Bengali" in req.prompt


def test_subjects_fresh_remote_hit_skips_generation():
    remote = MemoryLookupStore()
    subjects_cache = make_cache(remote, clock=lambda: 1_000_000.0)
    remote.put(LookupKey("CBSE", 9, "en"), CacheEntry(["Science", "Mathematics"], updated_at=999_000.0))
    gateway = FakeGateway({"gemini": FakeAdapter("gemini", [response(["unused"])])})
    deps = make_deps(gateway, subjects_cache=subjects_cache)

    assert get_subjects("CBSE", 9, "en", keys=KEYS, deps=deps) == ["Science", "Mathematics"]
    assert gateway.calls == []


def test_subjects_fall_back_to_defaults_when_providers_fail():
    adapter = FakeAdapter("gemini", [ProviderError("down")])
    remote = MemoryLookupStore()
    deps = make_deps(FakeGateway({"gemini": adapter}), subjects_cache=make_cache(remote))

    assert get_subjects("WBBSE", 10, "en", keys=KEYS, deps=deps) == DEFAULT_SUBJECTS
    assert remote.writes == 0


def test_subjects_fall_back_to_defaults_without_credentials():
    gateway = FakeGateway({})
    deps = make_deps(gateway, system_key=None)
    assert get_subjects("WBBSE", 10, "en", keys=None, deps=deps) == DEFAULT_SUBJECTS
    assert gateway.calls == []


def test_malformed_subject_list_falls_back():
    adapter = FakeAdapter("gemini", [response([{"name": "Physics"}])])
    deps = make_deps(FakeGateway({"gemini": adapter}))
    assert get_subjects("WBBSE", 10, "en", keys=KEYS, deps=deps) == DEFAULT_SUBJECTS


def test_chapters_fall_back_to_class_defaults():
    adapter = FakeAdapter("gemini", [ProviderError("down")])
    deps = make_deps(FakeGateway({"gemini": adapter}))
    assert get_chapters("WBBSE", 10, "Life Science", "en", keys=KEYS, deps=deps) == DEFAULT_CHAPTERS[10]


def test_chapters_without_class_defaults_are_empty():
    adapter = FakeAdapter("gemini", [ProviderError("down")])
    deps = make_deps(FakeGateway({"gemini": adapter}))
    assert get_chapters("CBSE", 5, "EVS", "en", keys=KEYS, deps=deps) == []


def test_empty_generation_falls_back_and_is_not_cached():
    adapter = FakeAdapter("gemini", [response([])])
    remote = MemoryLookupStore()
    deps = make_deps(FakeGateway({"gemini": adapter}), chapters_cache=make_cache(remote))
    assert get_chapters("WBBSE", 10, "Life Science", "en", keys=KEYS, deps=deps) == DEFAULT_CHAPTERS[10]
    assert remote.writes == 0


def test_cancellation_is_not_masked_by_defaults():
    cancel = CancelSignal()
    cancel.cancel()
    deps = make_deps(FakeGateway({"gemini": FakeAdapter("gemini", [response(["x"])])}))
    with pytest.raises(OperationCancelled):
        get_subjects("WBBSE", 10, "en", keys=KEYS, deps=deps, cancel=cancel)
