# config.py
"""
Application configuration constants for the prefetch cache
"""

# Cache settings
DEFAULT_MAX_ENTRIES = 50
DEFAULT_MAX_MEMORY_MB = 100
BYTES_PER_PIXEL = 4  # RGBA estimate for decoded images

# Optimization pass (evict 20% of entries when memory is 80% full)
OPTIMIZE_THRESHOLD = 0.8
OPTIMIZE_EVICT_FRACTION = 0.2

# Preload strategy: (offset from current index, priority)
PRELOAD_STRATEGY = (
    (0, 10),   # Current image
    (1, 8),    # Next image
    (-1, 8),   # Previous image
    (2, 6),
    (-2, 6),
    (3, 4),
    (-3, 4),
)
PRELOAD_DELAY_MS = 50
METRICS_DURATION_WINDOW = 100  # recent load durations kept for the mean

# Monitor settings
STATS_POLL_INTERVAL_MS = 5000
OPTIMIZE_INTERVAL_MS = 30 * 1000
MEMORY_THRESHOLD_BYTES = 500 << 20  # 500 MB

# Metadata persistence
METADATA_PATH = "media86_cache_metadata.json"
METADATA_MAX_RECORDS = 1000

# Supported image formats
SUPPORTED_IMAGE_FORMATS = ['png', 'jpg', 'jpeg', 'bmp', 'webp', 'gif', 'tiff', 'avif']
