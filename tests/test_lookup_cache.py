from __future__ import annotations

import json

import pytest

from eduquest.ai.lookup_cache import CacheEntry, LocalLookupStore, LookupKey, TwoTierLookupCache
from eduquest.ai.lookup_stores import MemoryLookupStore

DAY = 24 * 3600.0

SUBJECTS_KEY = LookupKey(board="WBBSE", class_num=10, lang="en")
CHAPTERS_KEY = LookupKey(board="WBBSE", class_num=10, lang="en", subject="Life Science")


class _Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class _Generator:
    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return list(self.values)


class _BrokenRemote:
    def __init__(self):
        self.puts = 0

    def get(self, key):
        raise ConnectionError("remote unavailable")

    def put(self, key, entry):
        self.puts += 1
        raise ConnectionError("remote unavailable")


def _cache(remote=None, clock=None):
    return TwoTierLookupCache(LocalLookupStore("test"), remote, clock=clock or _Clock())


def test_composite_keys():
    assert SUBJECTS_KEY.composite() == "WBBSE-10-en"
    assert CHAPTERS_KEY.composite() == "WBBSE-10-Life Science-en"
    with_semester = LookupKey("WBBSE", 10, "en", subject="Life Science", semester="2")
    assert with_semester.composite() == "WBBSE-10-Life Science-en-2"


def test_repeated_lookup_is_idempotent_and_generates_once():
    remote = MemoryLookupStore()
    cache = _cache(remote)
    gen = _Generator(["Physics", "Life Science"])

    first = cache.lookup(SUBJECTS_KEY, gen)
    second = cache.lookup(SUBJECTS_KEY, gen)

    assert first == second == ["Physics", "Life Science"]
    assert gen.calls == 1
    assert remote.writes == 1
    # second call is served locally
    assert remote.reads == 1


def test_stale_local_fresh_remote_reads_remote_once_and_never_generates():
    clock = _Clock()
    remote = MemoryLookupStore()
    remote.put(CHAPTERS_KEY, CacheEntry(["Chapter A"], updated_at=clock.now - 30 * DAY))
    local = LocalLookupStore("test")
    local.put(CHAPTERS_KEY, CacheEntry(["Old"], updated_at=clock.now - 8 * DAY))
    cache = TwoTierLookupCache(local, remote, clock=clock)
    gen = _Generator(["Generated"])

    assert cache.lookup(CHAPTERS_KEY, gen) == ["Chapter A"]
    assert gen.calls == 0
    assert remote.reads == 1
    refreshed = local.get(CHAPTERS_KEY)
    assert refreshed.values == ["Chapter A"]
    assert refreshed.updated_at == clock.now


def test_both_tiers_stale_regenerates_and_writes_both():
    clock = _Clock()
    remote = MemoryLookupStore()
    remote.put(SUBJECTS_KEY, CacheEntry(["Ancient"], updated_at=clock.now - 91 * DAY))
    cache = _cache(remote, clock)
    gen = _Generator(["Fresh"])

    assert cache.lookup(SUBJECTS_KEY, gen) == ["Fresh"]
    assert gen.calls == 1
    assert remote.entries[SUBJECTS_KEY.composite()].values == ["Fresh"]
    assert cache.local.get(SUBJECTS_KEY).values == ["Fresh"]


def test_local_entry_just_inside_window_is_used():
    clock = _Clock()
    local = LocalLookupStore("test")
    local.put(SUBJECTS_KEY, CacheEntry(["Cached"], updated_at=clock.now - 7 * DAY + 1))
    cache = TwoTierLookupCache(local, MemoryLookupStore(), clock=clock)
    gen = _Generator(["Generated"])
    assert cache.lookup(SUBJECTS_KEY, gen) == ["Cached"]
    assert gen.calls == 0


def test_empty_generation_is_not_cached():
    remote = MemoryLookupStore()
    cache = _cache(remote)
    gen = _Generator([])
    assert cache.lookup(SUBJECTS_KEY, gen) == []
    assert cache.lookup(SUBJECTS_KEY, gen) == []
    assert gen.calls == 2
    assert remote.writes == 0


def test_empty_cached_list_counts_as_miss():
    clock = _Clock()
    local = LocalLookupStore("test")
    local.put(SUBJECTS_KEY, CacheEntry([], updated_at=clock.now))
    cache = TwoTierLookupCache(local, None, clock=clock)
    assert cache.lookup(SUBJECTS_KEY, _Generator(["X"])) == ["X"]


@pytest.mark.parametrize(
    "raw",
    [
        "not a dict",
        {"data": "Physics", "timestamp": 1},
        {"data": ["Physics", 3], "timestamp": 1},
        {"data": ["Physics"]},
        {"data": ["Physics"], "timestamp": "yesterday"},
        {"data": ["Physics"], "timestamp": True},
    ],
)
def test_malformed_local_record_is_a_miss(raw, tmp_path):
    path = tmp_path / "test.json"
    path.write_text(json.dumps({SUBJECTS_KEY.composite(): raw}), encoding="utf-8")
    local = LocalLookupStore("test", path)
    cache = TwoTierLookupCache(local, None, clock=_Clock())
    gen = _Generator(["Physics"])
    assert cache.lookup(SUBJECTS_KEY, gen) == ["Physics"]
    assert gen.calls == 1


def test_remote_errors_are_treated_as_miss():
    remote = _BrokenRemote()
    cache = _cache(remote)
    gen = _Generator(["Physics"])
    assert cache.lookup(SUBJECTS_KEY, gen) == ["Physics"]
    assert remote.puts == 1
    assert cache.local.get(SUBJECTS_KEY).values == ["Physics"]


def test_generator_errors_propagate():
    cache = _cache(MemoryLookupStore())

    def _fail():
        raise RuntimeError("all providers failed")

    with pytest.raises(RuntimeError):
        cache.lookup(SUBJECTS_KEY, _fail)


def test_local_store_persists_to_disk(tmp_path):
    path = tmp_path / "eduquest_subjects_cache_v1.json"
    store = LocalLookupStore("eduquest_subjects_cache_v1", path)
    store.put(SUBJECTS_KEY, CacheEntry(["Physics"], updated_at=123.0))

    on_disk = json.loads(path.read_text("utf-8"))
    assert on_disk == {"WBBSE-10-en": {"data": ["Physics"], "timestamp": 123.0}}

    reloaded = LocalLookupStore("eduquest_subjects_cache_v1", path)
    assert reloaded.get(SUBJECTS_KEY) == CacheEntry(["Physics"], 123.0)


def test_local_store_ignores_non_object_file(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    store = LocalLookupStore("cache", path)
    assert store.get(SUBJECTS_KEY) is None


def test_local_store_in_dir(tmp_path):
    assert LocalLookupStore.in_dir("ns", None).path is None
    assert LocalLookupStore.in_dir("ns", tmp_path).path == tmp_path / "ns.json"
