"""Tests for fs_atomic.py: atomic JSON persistence for the local lookup tier."""
from __future__ import annotations

import json


def test_atomic_write_json_creates_file(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "data.json"
    payload = {"WBBSE-10-en": {"data": ["Physics"], "timestamp": 1.0}}
    atomic_write_json(target, payload)
    assert target.exists()
    assert json.loads(target.read_text("utf-8")) == payload


def test_atomic_write_json_overwrites(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "data.json"
    atomic_write_json(target, {"v": 1})
    atomic_write_json(target, {"v": 2})
    assert json.loads(target.read_text("utf-8"))["v"] == 2


def test_atomic_write_json_creates_parent_dirs(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "a" / "b" / "data.json"
    atomic_write_json(target, {"nested": True})
    assert target.exists()


def test_atomic_write_json_no_temp_file_left(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "clean.json"
    atomic_write_json(target, {"ok": True})
    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].name == "clean.json"


def test_atomic_write_json_keeps_non_ascii(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "bn.json"
    atomic_write_json(target, {"data": ["জীবন বিজ্ঞান"]})
    assert "জীবন বিজ্ঞান" in target.read_text("utf-8")


def test_read_json_or_none(tmp_path):
    from eduquest.ai.fs_atomic import read_json_or_none
    assert read_json_or_none(tmp_path / "missing.json") is None
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert read_json_or_none(broken) is None
    good = tmp_path / "good.json"
    good.write_text('{"a": 1}', encoding="utf-8")
    assert read_json_or_none(good) == {"a": 1}


def test_atomic_write_json_sorts_keys(tmp_path):
    from eduquest.ai.fs_atomic import atomic_write_json
    target = tmp_path / "cache.json"
    atomic_write_json(target, {"WBBSE-9-en": {"timestamp": 2.0, "data": []}, "WBBSE-10-en": {"data": []}})
    text = target.read_text("utf-8")
    assert text.index("WBBSE-10-en") < text.index("WBBSE-9-en")
    assert text.index('"data"', text.index("WBBSE-9-en")) < text.index('"timestamp"')
