"""Unit tests for the prefetch session controller."""

from __future__ import annotations

import asyncio
import json
from typing import List

import pytest

from media_prefetch.controllers import PrefetchSession
from media_prefetch.keys import split_key
from media_prefetch.loaders import ImageDimensions
from media_prefetch.managers.metadata import CacheMetadataStore


class StubLoader:
    def __init__(self) -> None:
        self.calls: List[str] = []

    async def __call__(self, key: str) -> ImageDimensions:
        self.calls.append(key)
        return ImageDimensions(width=100, height=100)


async def no_sleep(_: float) -> None:
    return None


def _make_session(**kwargs):
    loader = StubLoader()
    kwargs.setdefault("sleep", no_sleep)
    session = PrefetchSession(loader, **kwargs)
    return session, loader


def test_navigation_prefetches_neighbours_of_new_index():
    session, loader = _make_session()
    session.open_directory("/photos", ["a.png", "b.png", "c.png", "d.png", "e.png"])

    added = asyncio.run(session.on_navigation_changed(0))

    assert session.current_index == 0
    assert len(added) == 5
    assert split_key(loader.calls[0])[0] == "/photos/a.png"
    assert split_key(loader.calls[2])[0] == "/photos/e.png"
    assert session.is_cached(session.current_key())
    assert session.stats()["size"] == 5


def test_navigation_validates_index():
    session, _ = _make_session()
    session.open_directory("/photos", ["a.png"])
    with pytest.raises(IndexError):
        asyncio.run(session.on_navigation_changed(3))


def test_navigation_without_files_is_a_no_op():
    session, loader = _make_session()
    assert asyncio.run(session.on_navigation_changed(0)) == []
    assert session.current_key() is None
    assert loader.calls == []


def test_open_directory_clears_previous_entries():
    session, _ = _make_session()
    session.open_directory("/one", ["a.png", "b.png"])
    asyncio.run(session.on_navigation_changed(0))
    old_key = session.current_key()
    assert session.is_cached(old_key)

    session.open_directory("/two", ["c.png"])

    assert not session.is_cached(old_key)
    assert session.stats()["size"] == 0
    assert session.stats()["hit_count"] == 0


def test_bump_revision_changes_keys(monkeypatch):
    session, _ = _make_session()
    session.open_directory("/photos", ["a.png"])
    before = session.current_key()

    monkeypatch.setattr("media_prefetch.controllers.session.new_revision", lambda: "999")
    assert session.bump_revision() == "999"

    after = session.current_key()
    assert before != after
    assert after.endswith("?v=999")


def test_get_cached_counts_hits_and_misses():
    session, _ = _make_session()
    session.open_directory("/photos", ["a.png", "b.png"])
    asyncio.run(session.on_navigation_changed(1))

    assert session.get_cached(session.key_for(1)) is not None
    assert session.get_cached("/elsewhere/z.png?v=1") is None
    stats = session.stats()
    assert stats["hit_count"] == 1
    assert stats["miss_count"] == 1
    assert stats["hit_rate_percent"] == 50
    assert stats["preloading_count"] == 0


def test_optimize_cache_evicts_when_memory_is_tight():
    session, _ = _make_session(max_memory_mb=0.2)  # room for five 100x100 images
    session.open_directory("/photos", [f"{i}.png" for i in range(5)])
    asyncio.run(session.on_navigation_changed(2))

    assert session.optimize_cache() == 1
    assert session.stats()["size"] == 4


def test_metadata_round_trips_between_sessions(tmp_path):
    store = CacheMetadataStore(tmp_path / "meta.json")
    session, _ = _make_session(metadata_store=store)
    session.open_directory("/photos", ["a.png", "b.png"])
    asyncio.run(session.on_navigation_changed(0))
    for _ in range(3):
        session.get_cached(session.key_for(0))
    session.close()

    payload = json.loads((tmp_path / "meta.json").read_text())
    counts = dict(payload["access_count"])
    assert counts["/photos/a.png"] == 4

    restored, _ = _make_session(metadata_store=store)
    restored.open_directory("/photos", ["a.png", "b.png"])
    asyncio.run(restored.on_navigation_changed(0))
    entry = restored.get_cached(restored.key_for(0))
    # Four earlier accesses, one insert and this hit.
    assert entry.access_count == 6
