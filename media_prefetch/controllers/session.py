"""Session controller owning the prefetch cache for one open directory.

This module introduces :class:`PrefetchSession`, a small service layer that
mediates between the navigation widgets and the prefetch machinery.  The
session owns exactly one :class:`PriorityCache` and one
:class:`PreloadScheduler`; viewers receive the session by reference instead of
reaching for a process-wide cache.  Navigation components call
:meth:`PrefetchSession.on_navigation_changed` explicitly whenever the current
index changes, independent of how the UI repaints.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .. import config
from ..cache import CacheEntry, PriorityCache
from ..keys import new_revision, resolve_key, split_key
from ..loaders import PillowImageLoader
from ..managers.metadata import CacheMetadataStore
from ..scheduler import KeyResolver, Loader, PreloadRequest, PreloadScheduler

LOGGER = logging.getLogger(__name__)


class PrefetchSession:
    """Own the cache, the scheduler and the current directory snapshot."""

    def __init__(
        self,
        loader: Optional[Loader] = None,
        *,
        max_entries: int = config.DEFAULT_MAX_ENTRIES,
        max_memory_mb: float = config.DEFAULT_MAX_MEMORY_MB,
        delay_ms: int = config.PRELOAD_DELAY_MS,
        key_resolver: KeyResolver = resolve_key,
        clock: Callable[[], float] = time.time,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        metadata_store: Optional[CacheMetadataStore] = None,
    ) -> None:
        self.cache = PriorityCache(
            max_entries, max_memory_mb, clock=clock, usage_key=_usage_key
        )
        scheduler_kwargs: Dict[str, Any] = {"delay_ms": delay_ms, "key_resolver": key_resolver}
        if sleep is not None:
            scheduler_kwargs["sleep"] = sleep
        self.scheduler = PreloadScheduler(
            self.cache, loader or PillowImageLoader(), **scheduler_kwargs
        )
        self.metadata_store = metadata_store
        self._key_resolver = key_resolver
        self.directory = ""
        self.filenames: List[str] = []
        self.current_index = 0
        self.revision = new_revision()
        if self.metadata_store is not None:
            self.metadata_store.load(self.cache)

    # ------------------------------------------------------------------
    # Directory lifecycle
    # ------------------------------------------------------------------
    def open_directory(
        self, directory: str, filenames: Sequence[str], *, current_index: int = 0
    ) -> None:
        """Switch to a new directory listing, discarding cached entries."""
        self.clear_cache()
        self.directory = str(directory)
        self.filenames = list(filenames)
        self.current_index = current_index if self.filenames else 0
        self.revision = new_revision()
        LOGGER.info(
            "Opened directory for prefetch",
            extra={"directory": self.directory, "count": len(self.filenames)},
        )

    def bump_revision(self) -> str:
        """Invalidate every key of the directory after an external edit."""
        self.revision = new_revision()
        return self.revision

    def key_for(self, index: int) -> str:
        if not 0 <= index < len(self.filenames):
            raise IndexError(f"index {index} out of range for {len(self.filenames)} files")
        return self._key_resolver(self.directory, self.filenames[index], self.revision)

    def current_key(self) -> Optional[str]:
        if not self.filenames:
            return None
        return self.key_for(self.current_index)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    async def on_navigation_changed(self, index: int) -> List[PreloadRequest]:
        """Record the new position and prefetch its neighbours."""
        if not self.filenames:
            return []
        if not 0 <= index < len(self.filenames):
            raise IndexError(f"index {index} out of range for {len(self.filenames)} files")
        self.current_index = index
        return await self.scheduler.schedule_around(
            index, self.filenames, self.directory, self.revision
        )

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------
    def get_cached(self, key: str) -> Optional[CacheEntry]:
        return self.cache.get(key)

    def is_cached(self, key: str) -> bool:
        return self.cache.has(key)

    def is_preloading(self, key: str) -> bool:
        return self.scheduler.is_preloading(key)

    def clear_cache(self) -> None:
        """Empty the cache and drop pending prefetches.

        With a metadata store attached, usage is persisted before the cache
        is emptied and reloaded as hints afterwards.
        """
        if self.metadata_store is not None and len(self.cache):
            self.metadata_store.save(self.cache)
        self.cache.clear()
        self.scheduler.reset()
        if self.metadata_store is not None:
            self.metadata_store.load(self.cache)

    def optimize_cache(self, threshold: float = config.OPTIMIZE_THRESHOLD) -> int:
        return self.cache.optimize(threshold=threshold)

    def stats(self) -> Dict[str, Any]:
        """Return cache figures merged with scheduler progress for display."""
        payload = self.cache.stats().to_dict()
        scheduler_stats = self.scheduler.stats()
        payload["preloading_count"] = scheduler_stats["in_flight"]
        payload["queued_count"] = scheduler_stats["queued"]
        payload["failed_count"] = scheduler_stats["failed"]
        return payload

    def close(self) -> None:
        """Persist usage metadata; the session may still be used afterwards."""
        if self.metadata_store is not None:
            self.metadata_store.save(self.cache)


def _usage_key(key: str) -> str:
    # Usage history follows the file, not the revision it was loaded at.
    return split_key(key)[0]
