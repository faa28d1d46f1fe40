# scheduler.py
"""
Neighbour preloading for the priority cache.

:class:`PreloadScheduler` turns a navigation position into a ranked set of
neighbour keys, queues the ones that are neither cached nor already loading,
and drains the queue one load at a time with a short pause between items so
the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from . import config
from .cache import PriorityCache
from .keys import resolve_key

LOGGER = logging.getLogger(__name__)

KeyResolver = Callable[[str, str, Any], str]
Loader = Callable[[str], Awaitable[Any]]


class PreloadMetrics:
    """Simple in-memory counters for preload outcomes."""

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.durations: deque[float] = deque(maxlen=config.METRICS_DURATION_WINDOW)

    def record(self, name: str, duration: float | None = None) -> None:
        self.counters[name] += 1
        if duration is not None:
            self.durations.append(duration)

    def reset(self) -> None:
        self.counters.clear()
        self.durations.clear()

    def mean_duration(self) -> float:
        """Mean of the recent durations in milliseconds, 0 when none."""
        if not self.durations:
            return 0.0
        return sum(self.durations) / len(self.durations)


@dataclass(frozen=True)
class PreloadRequest:
    """A pending prefetch: *key* with its distance-derived *priority*."""

    key: str
    priority: int
    index: Optional[int] = None


def neighbor_indices(
    current_index: int,
    length: int,
    strategy: Sequence[Tuple[int, int]] = config.PRELOAD_STRATEGY,
) -> List[Tuple[int, int]]:
    """Return ``(index, priority)`` pairs around *current_index*.

    Offsets wrap at both ends of the list, so the neighbour before index 0 is
    the last item.  When a short list makes two offsets land on the same
    index, only the first (highest priority) one is kept.
    """
    if length <= 0:
        return []
    seen = set()
    result = []
    for offset, priority in strategy:
        index = (current_index + offset) % length
        if index in seen:
            continue
        seen.add(index)
        result.append((index, priority))
    return result


class PreloadScheduler:
    """Queue and drain neighbour prefetches for a :class:`PriorityCache`."""

    def __init__(
        self,
        cache: PriorityCache,
        loader: Loader,
        *,
        strategy: Sequence[Tuple[int, int]] = config.PRELOAD_STRATEGY,
        delay_ms: int = config.PRELOAD_DELAY_MS,
        key_resolver: KeyResolver = resolve_key,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if delay_ms < 0:
            raise ValueError("delay_ms must not be negative")
        self.cache = cache
        self.loader = loader
        self.strategy = tuple(strategy)
        self.delay_ms = delay_ms
        self.metrics = PreloadMetrics()
        self._key_resolver = key_resolver
        self._sleep = sleep
        self._queue: List[PreloadRequest] = []
        self._in_flight: set[str] = set()
        self._draining = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def in_flight(self) -> FrozenSet[str]:
        return frozenset(self._in_flight)

    @property
    def pending(self) -> List[PreloadRequest]:
        return list(self._queue)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def is_preloading(self, key: str) -> bool:
        return key in self._in_flight

    def is_queued(self, key: str) -> bool:
        return self._queued_position(key) is not None

    def _queued_position(self, key: str) -> Optional[int]:
        for position, request in enumerate(self._queue):
            if request.key == key:
                return position
        return None

    def reset(self) -> None:
        """Forget queued requests and in-flight bookkeeping.

        Loads already awaiting the loader still complete and are admitted
        into the cache.
        """
        self._queue.clear()
        self._in_flight.clear()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def enqueue(self, key: str, priority: int, index: Optional[int] = None) -> bool:
        """Queue *key* unless it is cached or loading.

        A key that is already queued keeps a single request, raised to the
        higher of its old and new priority.  Returns whether the queue changed.
        """
        if not key or self.cache.has(key) or key in self._in_flight:
            self.metrics.record("skipped")
            return False
        position = self._queued_position(key)
        if position is None:
            self._queue.append(PreloadRequest(key=key, priority=priority, index=index))
            self.metrics.record("scheduled")
        elif priority > self._queue[position].priority:
            self._queue[position] = replace(self._queue[position], priority=priority, index=index)
            self.metrics.record("promoted")
        else:
            self.metrics.record("skipped")
            return False
        self._queue.sort(key=lambda request: request.priority, reverse=True)
        return True

    def plan_around(
        self,
        current_index: int,
        filenames: Sequence[str],
        directory: str,
        revision: Any,
    ) -> List[PreloadRequest]:
        """Queue the neighbours of *current_index* without draining.

        Returns the requests that were added or promoted.
        """
        snapshot = list(filenames)
        added = []
        for index, priority in neighbor_indices(current_index, len(snapshot), self.strategy):
            key = self._key_resolver(directory, snapshot[index], revision)
            if self.enqueue(key, priority, index):
                added.append(PreloadRequest(key=key, priority=priority, index=index))
        return added

    async def schedule_around(
        self,
        current_index: int,
        filenames: Sequence[str],
        directory: str,
        revision: Any,
    ) -> List[PreloadRequest]:
        """Queue the neighbours of *current_index* and drain the queue.

        If another call is already draining, the new requests are left to
        that loop and this coroutine returns right away.
        """
        added = self.plan_around(current_index, filenames, directory, revision)
        await self.drain()
        return added

    async def drain(self) -> None:
        """Process queued requests one at a time until the queue is empty."""
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                request = self._queue.pop(0)
                if self.cache.has(request.key) or request.key in self._in_flight:
                    self.metrics.record("skipped")
                    continue
                await self._load(request)
                if self.delay_ms:
                    await self._sleep(self.delay_ms / 1000)
        finally:
            self._draining = False

    async def _load(self, request: PreloadRequest) -> bool:
        key = request.key
        self._in_flight.add(key)
        start = time.perf_counter()
        try:
            dimensions = await self.loader(key)
        except Exception as exc:  # noqa: BLE001
            self.metrics.record("failed")
            LOGGER.warning(
                "Failed to preload image: %s",
                key,
                extra={"key": key, "priority": request.priority, "error": str(exc)},
            )
            return False
        finally:
            self._in_flight.discard(key)
        self.cache.set(key, dimensions)
        duration = (time.perf_counter() - start) * 1000
        self.metrics.record("loaded", duration)
        LOGGER.debug("preloaded image", extra={"key": key, "duration_ms": duration})
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def stats(self) -> Dict[str, Any]:
        counters = self.metrics.counters
        return {
            "queued": len(self._queue),
            "in_flight": len(self._in_flight),
            "draining": self._draining,
            "scheduled": counters["scheduled"],
            "loaded": counters["loaded"],
            "failed": counters["failed"],
            "skipped": counters["skipped"],
            "promoted": counters["promoted"],
            "mean_load_ms": round(self.metrics.mean_duration(), 2),
        }


__all__ = [
    "PreloadMetrics",
    "PreloadRequest",
    "PreloadScheduler",
    "neighbor_indices",
]
