import asyncio

import pytest
from PIL import Image

from media_prefetch.keys import resolve_key
from media_prefetch.loaders import ImageDimensions, ImageLoadError, PillowImageLoader


def _save_png(directory, name="a.png", size=(30, 20)):
    Image.new("RGB", size, color="white").save(directory / name)
    return resolve_key(directory, name, 1)


def test_pillow_loader_reads_dimensions(tmp_path):
    key = _save_png(tmp_path)

    dims = asyncio.run(PillowImageLoader()(key))

    assert isinstance(dims, ImageDimensions)
    assert (dims.width, dims.height) == (30, 20)
    assert dims.format == "PNG"
    assert dims.path == str((tmp_path / "a.png").resolve())


def test_pillow_loader_applies_exif_rotation(tmp_path):
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 degrees clockwise on display
    Image.new("RGB", (40, 10), color="red").save(tmp_path / "r.jpg", exif=exif.tobytes())
    key = resolve_key(tmp_path, "r.jpg", 1)

    rotated = PillowImageLoader().read_dimensions(key)
    stored = PillowImageLoader(auto_transform=False).read_dimensions(key)

    assert (rotated.width, rotated.height) == (10, 40)
    assert (stored.width, stored.height) == (40, 10)


def test_pillow_loader_wraps_decode_errors(tmp_path):
    (tmp_path / "bad.png").write_bytes(b"not really a png")
    key = resolve_key(tmp_path, "bad.png", 1)

    with pytest.raises(ImageLoadError) as excinfo:
        asyncio.run(PillowImageLoader()(key))
    assert excinfo.value.key == key


def test_pillow_loader_rejects_missing_and_unsupported_files(tmp_path):
    (tmp_path / "notes.txt").write_text("hello")

    with pytest.raises(ImageLoadError):
        PillowImageLoader().read_dimensions(resolve_key(tmp_path, "missing.png", 1))
    with pytest.raises(ImageLoadError):
        PillowImageLoader().read_dimensions(resolve_key(tmp_path, "notes.txt", 1))
