"""Priority-scored, memory-bounded cache for loaded image metadata.

The cache keeps one :class:`CacheEntry` per resolved image key and enforces
two ceilings at once: a maximum number of entries and a maximum estimated
memory footprint (``width * height * 4`` bytes per image).  When either
ceiling would be exceeded the entry with the lowest priority score is
evicted, where::

    priority = access_count / max(minutes_since_last_access, 1)

Frequently revisited images therefore survive short idle periods, while new
neighbours are not starved by images that merely accumulated hits long ago.
Priorities depend on wall-clock time and are recomputed on every eviction.

Instances are owned by a session (see
:class:`media_prefetch.controllers.session.PrefetchSession`); there is no
module-level cache.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from . import config

LOGGER = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class CacheAccountingError(AssertionError):
    """Raised when the memory bookkeeping no longer matches resident entries."""


@dataclass
class CacheEntry:
    """Metadata recorded for one resident image."""

    key: str
    width: int
    height: int
    estimated_bytes: int
    inserted_at: float
    last_accessed_at: float
    access_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time usage figures for UI display."""

    size: int
    max_entries: int
    memory_used_bytes: int
    max_memory_bytes: int
    hit_count: int
    miss_count: int
    hit_rate_percent: int

    @property
    def memory_used_mb(self) -> float:
        return round(self.memory_used_bytes / BYTES_PER_MB, 2)

    @property
    def max_memory_mb(self) -> float:
        return round(self.max_memory_bytes / BYTES_PER_MB, 2)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["memory_used_mb"] = self.memory_used_mb
        payload["max_memory_mb"] = self.max_memory_mb
        return payload


def estimate_image_bytes(width: int, height: int, channels: int = config.BYTES_PER_PIXEL) -> int:
    """Estimate the decoded footprint of a ``width`` x ``height`` image."""
    return int(width) * int(height) * channels


def _read_field(metadata: Any, name: str) -> Any:
    if isinstance(metadata, Mapping):
        return metadata.get(name)
    return getattr(metadata, name, None)


def _extra_metadata(metadata: Any) -> Dict[str, Any]:
    if isinstance(metadata, Mapping):
        source = dict(metadata)
    elif is_dataclass(metadata):
        source = asdict(metadata)
    else:
        source = dict(getattr(metadata, "__dict__", {}))
    source.pop("width", None)
    source.pop("height", None)
    return source


class PriorityCache:
    """Bounded key -> :class:`CacheEntry` store with priority-based eviction."""

    def __init__(
        self,
        max_entries: int = config.DEFAULT_MAX_ENTRIES,
        max_memory_mb: float = config.DEFAULT_MAX_MEMORY_MB,
        *,
        clock: Callable[[], float] = time.time,
        usage_key: Callable[[str], str] = str,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be greater than zero")
        if max_memory_mb <= 0:
            raise ValueError("max_memory_mb must be greater than zero")
        self.max_entries = max_entries
        self.max_memory_bytes = int(max_memory_mb * BYTES_PER_MB)
        self._clock = clock
        self._usage_key = usage_key
        self._entries: Dict[str, CacheEntry] = {}
        self._usage_hints: Dict[str, Tuple[int, float]] = {}
        self.memory_used_bytes = 0
        self.hit_count = 0
        self.miss_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for *key*, recording a hit or a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self.miss_count += 1
            return None
        self.hit_count += 1
        entry.access_count += 1
        entry.last_accessed_at = self._clock()
        return entry

    def has(self, key: str) -> bool:
        """Membership test that leaves recency and frequency untouched."""
        return key in self._entries

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def set(self, key: str, metadata: Any) -> CacheEntry:
        """Insert or overwrite *key*, evicting low-priority entries as needed.

        ``metadata`` is a mapping or object exposing ``width`` and ``height``.
        A lone image larger than the memory ceiling is still admitted once the
        store is empty; the currently displayed image is never rejected.
        """
        width = int(_read_field(metadata, "width") or 0)
        height = int(_read_field(metadata, "height") or 0)
        estimated = estimate_image_bytes(width, height)

        previous = self._entries.pop(key, None)
        if previous is not None:
            self._release(previous)
            access_count = previous.access_count
        else:
            access_count, _ = self._usage_hints.pop(self._usage_key(key), (0, 0.0))

        while self._entries and (
            len(self._entries) >= self.max_entries
            or self.memory_used_bytes + estimated > self.max_memory_bytes
        ):
            self.evict_lowest_priority()

        if estimated > self.max_memory_bytes:
            LOGGER.warning(
                "image exceeds cache memory ceiling; admitting anyway",
                extra={"key": key, "estimated_bytes": estimated},
            )

        now = self._clock()
        entry = CacheEntry(
            key=key,
            width=width,
            height=height,
            estimated_bytes=estimated,
            inserted_at=now,
            last_accessed_at=now,
            access_count=access_count + 1,
            metadata=_extra_metadata(metadata),
        )
        self._entries[key] = entry
        self.memory_used_bytes += estimated
        return entry

    def delete(self, key: str) -> bool:
        """Remove *key*; return whether it was resident."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._release(entry)
        return True

    def clear(self) -> None:
        """Drop every entry and reset the hit/miss counters."""
        self._entries.clear()
        self._usage_hints.clear()
        self.memory_used_bytes = 0
        self.hit_count = 0
        self.miss_count = 0

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------
    def priority(self, key: str, now: Optional[float] = None) -> float:
        """Return the eviction priority of *key*; lower is evicted first."""
        entry = self._entries[key]
        return self._score(entry, self._clock() if now is None else now)

    @staticmethod
    def _score(entry: CacheEntry, now: float) -> float:
        minutes_idle = (now - entry.last_accessed_at) / 60
        return entry.access_count / max(minutes_idle, 1)

    def evict_lowest_priority(self) -> Optional[str]:
        """Evict the single lowest-priority entry and return its key."""
        if not self._entries:
            return None
        now = self._clock()
        evict_key = None
        lowest = float("inf")
        for key, entry in self._entries.items():
            score = self._score(entry, now)
            if score < lowest:
                lowest = score
                evict_key = key
        self._release(self._entries.pop(evict_key))
        LOGGER.debug("evicted cache entry", extra={"key": evict_key, "priority": lowest})
        return evict_key

    def optimize(
        self,
        threshold: float = config.OPTIMIZE_THRESHOLD,
        fraction: float = config.OPTIMIZE_EVICT_FRACTION,
    ) -> int:
        """Evict a fraction of entries when memory use passes *threshold*.

        Returns the number of entries evicted.
        """
        if self.memory_used_bytes <= self.max_memory_bytes * threshold:
            return 0
        evict_count = int(len(self._entries) * fraction)
        for _ in range(evict_count):
            self.evict_lowest_priority()
        if evict_count:
            LOGGER.info(
                "cache optimization executed",
                extra={"evicted": evict_count, "memory_used_bytes": self.memory_used_bytes},
            )
        return evict_count

    def _release(self, entry: CacheEntry) -> None:
        self.memory_used_bytes -= entry.estimated_bytes
        if self.memory_used_bytes < 0:
            if __debug__:
                raise CacheAccountingError(
                    f"memory accounting went negative after releasing {entry.key!r}"
                )
            LOGGER.error(
                "cache memory accounting drifted; resynchronising",
                extra={"key": entry.key, "memory_used_bytes": self.memory_used_bytes},
            )
            self.memory_used_bytes = sum(e.estimated_bytes for e in self._entries.values())

    # ------------------------------------------------------------------
    # Usage metadata
    # ------------------------------------------------------------------
    def usage_snapshot(self) -> Dict[str, Dict[str, float]]:
        """Return access counts and last-access times of resident entries.

        Entries are grouped by ``usage_key`` so that several revisions of the
        same file collapse into one record.
        """
        snapshot: Dict[str, Dict[str, float]] = {}
        for key, entry in self._entries.items():
            record = snapshot.setdefault(
                self._usage_key(key), {"access_count": 0, "last_accessed_at": 0.0}
            )
            record["access_count"] = max(record["access_count"], entry.access_count)
            record["last_accessed_at"] = max(record["last_accessed_at"], entry.last_accessed_at)
        return snapshot

    def restore_usage(self, usage: Mapping[str, Mapping[str, Any]]) -> int:
        """Seed access counts for keys that are later inserted.

        Resident entries are updated in place.  Returns the number of records
        accepted.
        """
        resident: Dict[str, List[CacheEntry]] = {}
        for key, entry in self._entries.items():
            resident.setdefault(self._usage_key(key), []).append(entry)

        restored = 0
        for usage_key, values in usage.items():
            try:
                count = int(values.get("access_count", 0))
                last = float(values.get("last_accessed_at", 0.0))
            except (AttributeError, TypeError, ValueError):
                LOGGER.warning("Ignoring malformed usage entry: %s", usage_key)
                continue
            if usage_key in resident:
                for entry in resident[usage_key]:
                    entry.access_count = max(entry.access_count, count)
                    entry.last_accessed_at = max(entry.last_accessed_at, last)
            else:
                self._usage_hints[usage_key] = (count, last)
            restored += 1
        return restored

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def stats(self) -> CacheStats:
        total = self.hit_count + self.miss_count
        # Half-up rounding, so 12.5% reports as 13.
        hit_rate = int(100 * self.hit_count / total + 0.5) if total else 0
        return CacheStats(
            size=len(self._entries),
            max_entries=self.max_entries,
            memory_used_bytes=self.memory_used_bytes,
            max_memory_bytes=self.max_memory_bytes,
            hit_count=self.hit_count,
            miss_count=self.miss_count,
            hit_rate_percent=hit_rate,
        )

    def entries(self) -> List[CacheEntry]:
        """Return the resident entries in insertion order."""
        return list(self._entries.values())


__all__ = [
    "CacheAccountingError",
    "CacheEntry",
    "CacheStats",
    "PriorityCache",
    "estimate_image_bytes",
]
