# managers/monitor.py
"""
CacheMonitor: polls prefetch statistics for display and periodically trims
the cache when it runs close to its memory ceiling or the process grows too
large.
"""
import logging
from typing import Optional

import psutil
from PySide6.QtCore import QObject, QTimer, Signal

from .. import config

LOGGER = logging.getLogger(__name__)


class CacheMonitor(QObject):
    """Emits cache statistics and runs cache optimization on timers."""

    stats_changed = Signal(dict)

    def __init__(
        self,
        session,
        parent: Optional[QObject] = None,
        stats_timer: Optional[QTimer] = None,
        optimize_timer: Optional[QTimer] = None,
        memory_threshold_bytes: int = config.MEMORY_THRESHOLD_BYTES,
    ):
        super().__init__(parent)
        self.session = session
        self.memory_threshold_bytes = memory_threshold_bytes
        self.last_stats: dict = {}

        self.stats_timer = stats_timer or QTimer(self)
        self.stats_timer.timeout.connect(self.poll_stats)
        self.stats_timer.start(config.STATS_POLL_INTERVAL_MS)

        self.optimize_timer = optimize_timer or QTimer(self)
        self.optimize_timer.timeout.connect(self.optimize)
        self.optimize_timer.start(config.OPTIMIZE_INTERVAL_MS)

        self.poll_stats()

    def poll_stats(self) -> dict:
        self.last_stats = self.session.stats()
        self.stats_changed.emit(self.last_stats)
        return self.last_stats

    def process_memory(self) -> Optional[int]:
        """Return the resident set size of this process, if readable."""
        try:
            return psutil.Process().memory_info().rss
        except (psutil.Error, OSError) as e:
            LOGGER.warning("Memory check failed: %s", e)
            return None

    def optimize(self) -> int:
        """Run the periodic optimization pass; return entries evicted."""
        rss = self.process_memory()
        if rss is not None and rss > self.memory_threshold_bytes:
            # Under process-wide memory pressure trim regardless of cache fill.
            evicted = self.session.optimize_cache(threshold=0.0)
            LOGGER.info(
                "CacheMonitor: forced cache optimization",
                extra={"rss": rss, "evicted": evicted},
            )
        else:
            evicted = self.session.optimize_cache()
        if evicted:
            self.poll_stats()
        return evicted

    def stop(self) -> None:
        self.stats_timer.stop()
        self.optimize_timer.stop()
