"""Image loaders used by the preload scheduler.

A loader is an async callable ``loader(key) -> ImageDimensions``.  The
scheduler only cares about success (natural dimensions) or failure, so the
loaders here read image headers without decoding pixel data.  Blocking file
access runs in a worker thread via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from PIL import Image

from .validation import validate_key_path

LOGGER = logging.getLogger(__name__)

# EXIF orientations that rotate the image by 90 or 270 degrees.
_TRANSPOSED_ORIENTATIONS = frozenset({5, 6, 7, 8})
_EXIF_ORIENTATION_TAG = 0x0112


class ImageLoadError(RuntimeError):
    """Raised when an image behind a cache key cannot be read."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{message}: {key}")
        self.key = key


@dataclass(frozen=True)
class ImageDimensions:
    """Natural size of an image as displayed (EXIF orientation applied)."""

    width: int
    height: int
    path: str = ""
    format: str = ""


Loader = Callable[[str], Awaitable[ImageDimensions]]


class PillowImageLoader:
    """Read image dimensions with Pillow without decoding the full bitmap."""

    def __init__(self, allowed_exts: Optional[Iterable[str]] = None, auto_transform: bool = True):
        self.allowed_exts = set(allowed_exts) if allowed_exts is not None else None
        self.auto_transform = auto_transform

    async def __call__(self, key: str) -> ImageDimensions:
        return await asyncio.to_thread(self.read_dimensions, key)

    def read_dimensions(self, key: str) -> ImageDimensions:
        try:
            resolved = validate_key_path(key, self.allowed_exts)
        except ValueError as exc:
            raise ImageLoadError(key, str(exc)) from exc

        try:
            with Image.open(resolved) as img:
                width, height = img.size
                fmt = img.format or ""
                if self.auto_transform and _is_transposed(img):
                    width, height = height, width
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageLoadError(key, f"Unreadable image ({exc})") from exc

        if width <= 0 or height <= 0:
            raise ImageLoadError(key, "Image has no pixels")
        return ImageDimensions(width=width, height=height, path=str(resolved), format=fmt)


def _is_transposed(img: Image.Image) -> bool:
    try:
        orientation = img.getexif().get(_EXIF_ORIENTATION_TAG)
    except (OSError, ValueError):
        LOGGER.debug("Could not read EXIF orientation for %s", getattr(img, "filename", ""))
        return False
    return orientation in _TRANSPOSED_ORIENTATIONS

