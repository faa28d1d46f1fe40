import pytest

from media_prefetch import config
from media_prefetch.keys import resolve_key
from media_prefetch.validation import (
    supported_extensions,
    validate_image_path,
    validate_key_path,
)


def test_validate_image_path_rejects_urls(tmp_path):
    with pytest.raises(ValueError):
        validate_image_path("http://example.com/a.png")


def test_validate_image_path_rejects_bad_extension(tmp_path):
    f = tmp_path / "evil.txt"
    f.write_text("not an image")
    with pytest.raises(ValueError):
        validate_image_path(f)


def test_validate_image_path_rejects_missing_file(tmp_path):
    with pytest.raises(ValueError):
        validate_image_path(tmp_path / "gone.png")


def test_validate_image_path_rejects_directories(tmp_path):
    folder = tmp_path / "folder.png"
    folder.mkdir()
    with pytest.raises(ValueError):
        validate_image_path(folder)


def test_validate_image_path_returns_resolved_path(tmp_path):
    f = tmp_path / "ok.PNG"
    f.write_bytes(b"")
    assert validate_image_path(f) == f.resolve()


def test_supported_formats_list_includes_avif():
    assert "avif" in {fmt.lower() for fmt in config.SUPPORTED_IMAGE_FORMATS}
    assert ".avif" in supported_extensions()


def test_validate_key_path_strips_revision(tmp_path):
    f = tmp_path / "photo.jpg"
    f.write_bytes(b"")
    key = resolve_key(str(tmp_path), "photo.jpg", 3)
    assert validate_key_path(key) == f.resolve()


def test_validate_key_path_rejects_missing_file(tmp_path):
    key = resolve_key(str(tmp_path), "gone.png", 1)
    with pytest.raises(ValueError):
        validate_key_path(key)


def test_validate_key_path_rejects_empty_key():
    with pytest.raises(ValueError):
        validate_key_path("")
