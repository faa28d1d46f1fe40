"""QImageReader-backed loader for hosts that already run a Qt stack."""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from PySide6.QtGui import QImageIOHandler, QImageReader

from .loaders import ImageDimensions, ImageLoadError
from .validation import validate_key_path


class QtImageLoader:
    """Read image dimensions through Qt's image plugins.

    ``QImageReader.size()`` only parses the header.  It reports the stored
    size, so width and height are swapped here when the EXIF transformation
    includes a 90 degree rotation.
    """

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

        reader = QImageReader(str(resolved))
        reader.setAutoTransform(self.auto_transform)
        if not reader.canRead():
            raise ImageLoadError(key, f"Unsupported image format ({reader.errorString()})")

        size = reader.size()
        if not size.isValid() or size.isEmpty():
            raise ImageLoadError(key, f"Could not read image size ({reader.errorString()})")

        width, height = size.width(), size.height()
        if self.auto_transform and _rotates_90(reader):
            width, height = height, width

        fmt = reader.format().data().decode("utf-8") if reader.format().data() else ""
        return ImageDimensions(
            width=width, height=height, path=str(resolved), format=fmt.upper()
        )


def _rotates_90(reader: QImageReader) -> bool:
    rotate = QImageIOHandler.Transformation.TransformationRotate90
    return bool(reader.transformation() & rotate)
