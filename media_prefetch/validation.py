"""Checks applied to cache keys before a loader touches the filesystem."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Union
from urllib.parse import urlparse

from . import config
from .keys import split_key


def _has_url_scheme(path_str: str) -> bool:
    """Return True if *path_str* looks like a URL with a scheme.

    Single-letter schemes such as ``"C"`` are treated as drive letters on
    Windows and therefore ignored.
    """
    parsed = urlparse(path_str)
    return bool(parsed.scheme and len(parsed.scheme) > 1)


def supported_extensions() -> set[str]:
    """Return the dotted, lower-case extensions the loaders accept."""
    return {f".{fmt.lower()}" for fmt in config.SUPPORTED_IMAGE_FORMATS}


def validate_image_path(
    path: Union[str, Path], allowed_exts: Optional[Iterable[str]] = None
) -> Path:
    """Return the resolved image file behind *path*.

    Raises ``ValueError`` for URLs, missing paths, directories and
    extensions outside *allowed_exts* (the configured formats by default).
    """
    exts = supported_extensions() if allowed_exts is None else {e.lower() for e in allowed_exts}
    path_str = str(path)
    if _has_url_scheme(path_str):
        raise ValueError("URLs are not allowed")

    p = Path(path_str).expanduser()
    try:
        p = p.resolve(strict=True)
    except FileNotFoundError as exc:
        raise ValueError(f"File does not exist: {path_str}") from exc

    if not p.is_file():
        raise ValueError(f"Not a file: {path_str}")

    if p.suffix.lower() not in exts:
        raise ValueError(f"Unsupported file extension: {p.suffix}")

    return p


def validate_key_path(key: str, allowed_exts: Optional[Iterable[str]] = None) -> Path:
    """Strip the revision token from *key* and validate the file it names."""
    path, _ = split_key(key)
    if not path:
        raise ValueError("Cache key has no path")
    return validate_image_path(path, allowed_exts)
