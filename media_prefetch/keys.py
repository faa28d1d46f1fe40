"""Cache key resolution for directory entries.

A key names one revision of one file: ``"<directory>/<filename>?v=<revision>"``.
Bumping the revision after an external mutation (rotate, rename) makes every
key of the directory distinct from the stale cached ones.
"""

from __future__ import annotations

import time
from pathlib import PurePath
from typing import Tuple, Union

REVISION_SEPARATOR = "?v="


def new_revision() -> str:
    """Return a fresh cache-busting token (milliseconds since the epoch)."""
    return str(int(time.time() * 1000))


def resolve_key(directory: Union[str, PurePath], filename: str, revision: Union[str, int]) -> str:
    """Build the cache key for *filename* inside *directory* at *revision*."""
    if not filename:
        raise ValueError("filename must not be empty")
    base = PurePath(directory).as_posix().rstrip("/") if str(directory) else ""
    return f"{base}/{filename}{REVISION_SEPARATOR}{revision}"


def split_key(key: str) -> Tuple[str, str]:
    """Return ``(path, revision)`` for a key built by :func:`resolve_key`.

    Keys without a revision suffix yield an empty revision.
    """
    path, sep, revision = key.rpartition(REVISION_SEPARATOR)
    if not sep:
        return key, ""
    return path, revision
