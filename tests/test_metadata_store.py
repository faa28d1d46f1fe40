import json
import logging
import os

import pytest

from media_prefetch.cache import PriorityCache
from media_prefetch.managers.metadata import CacheMetadataStore


class FrozenClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _cache_with(keys, now=100.0):
    cache = PriorityCache(clock=FrozenClock(now))
    for key in keys:
        cache.set(key, {"width": 1, "height": 1})
    return cache


def test_save_writes_access_counts_and_timestamps(tmp_path):
    store = CacheMetadataStore(tmp_path / "meta.json")
    cache = _cache_with(["a", "b"])
    cache.get("a")

    assert store.save(cache) is True

    payload = json.loads((tmp_path / "meta.json").read_text())
    assert dict(payload["access_count"]) == {"a": 2, "b": 1}
    assert dict(payload["last_access"]) == {"a": 100.0, "b": 100.0}
    assert "timestamp" in payload
    assert not list(tmp_path.glob("*.tmp"))


def test_save_merges_with_existing_records(tmp_path):
    store = CacheMetadataStore(tmp_path / "meta.json")
    store.save(_cache_with(["a"]))
    later = _cache_with(["b"], now=200.0)

    store.save(later)

    assert set(store.read()) == {"a", "b"}


def test_save_keeps_most_recent_records(tmp_path):
    store = CacheMetadataStore(tmp_path / "meta.json", max_records=1)
    store.save(_cache_with(["old"], now=1.0))
    store.save(_cache_with(["new"], now=2.0))

    assert list(store.read()) == ["new"]


def test_load_seeds_cache(tmp_path):
    store = CacheMetadataStore(tmp_path / "meta.json")
    source = _cache_with(["a"])
    source.get("a")
    source.get("a")
    store.save(source)

    target = PriorityCache()
    assert store.load(target) == 1
    assert target.set("a", {"width": 1, "height": 1}).access_count == 4


def test_load_missing_file_is_empty(tmp_path):
    assert CacheMetadataStore(tmp_path / "none.json").load(PriorityCache()) == 0


def test_corrupt_file_logs_warning(tmp_path, caplog):
    path = tmp_path / "meta.json"
    path.write_text("{not json")

    with caplog.at_level(logging.WARNING):
        assert CacheMetadataStore(path).load(PriorityCache()) == 0
    assert "Failed to restore cache metadata" in caplog.text


def test_malformed_layout_is_ignored(tmp_path, caplog):
    path = tmp_path / "meta.json"
    path.write_text(json.dumps({"access_count": [["a", "many"]]}))

    with caplog.at_level(logging.WARNING):
        assert CacheMetadataStore(path).read() == {}
    assert "malformed" in caplog.text


def test_save_failure_is_logged_not_raised(tmp_path, caplog, monkeypatch):
    store = CacheMetadataStore(tmp_path / "meta.json")

    def fail_replace(*_):
        raise OSError("read-only")

    monkeypatch.setattr(os, "replace", fail_replace)

    with caplog.at_level(logging.WARNING):
        assert store.save(_cache_with(["a"])) is False
    assert "Failed to persist cache metadata" in caplog.text
    assert any("cid" in r.__dict__ for r in caplog.records)
    assert not list(tmp_path.glob("*.tmp"))


def test_invalid_record_limit():
    with pytest.raises(ValueError):
        CacheMetadataStore("x.json", max_records=0)
