"""Adjacent-image prefetch cache for the image viewer."""

from .cache import CacheAccountingError, CacheEntry, CacheStats, PriorityCache
from .controllers import PrefetchSession
from .keys import resolve_key, split_key
from .loaders import ImageDimensions, ImageLoadError, PillowImageLoader
from .scheduler import PreloadRequest, PreloadScheduler, neighbor_indices

__version__ = "1.0.0"

__all__ = [
    "CacheAccountingError",
    "CacheEntry",
    "CacheStats",
    "ImageDimensions",
    "ImageLoadError",
    "PillowImageLoader",
    "PreloadRequest",
    "PreloadScheduler",
    "PrefetchSession",
    "PriorityCache",
    "neighbor_indices",
    "resolve_key",
    "split_key",
]
