import pytest

from TreeShare.core.errors import BlobNameRejectedError, InvalidBlobNameError, ValidationError
from TreeShare.core.models import UploadedFile
from TreeShare.core.validator import (
    check_blob_name,
    is_record_id,
    normalize_color,
    validate_batch,
)

MAX_BYTES = 1024


def _file(content_type="image/jpeg", data=b"x" * 10, filename="photo.jpg") -> UploadedFile:
    return UploadedFile(filename=filename, content_type=content_type, data=data)


def test_valid_batch_returns_normalized_palette() -> None:
    palette = validate_batch(
        [_file(), _file("image/png")],
        {"primary": " #FF0000 ", "accent": "#0F0", "light": "#0000ff"},
        max_files=20,
        max_bytes=MAX_BYTES,
    )
    assert palette.primary == "#ff0000"
    assert palette.accent == "#00ff00"
    assert palette.light == "#0000ff"


def test_empty_batch_rejected(palette) -> None:
    with pytest.raises(ValidationError, match="No files"):
        validate_batch([], palette, max_files=20, max_bytes=MAX_BYTES)


def test_batch_cap(palette) -> None:
    with pytest.raises(ValidationError, match="Too many files"):
        validate_batch([_file()] * 21, palette, max_files=20, max_bytes=MAX_BYTES)


@pytest.mark.parametrize("content_type", ["text/plain", "image/bmp", "image/svg+xml", "", None])
def test_disallowed_mime_rejected(palette, content_type) -> None:
    with pytest.raises(ValidationError, match="only JPEG, PNG, GIF, and WebP"):
        validate_batch([_file(content_type)], palette, max_files=20, max_bytes=MAX_BYTES)


@pytest.mark.parametrize("content_type", ["IMAGE/PNG", "image/webp; q=1", "image/gif"])
def test_mime_matching_ignores_case_and_parameters(palette, content_type) -> None:
    validate_batch([_file(content_type)], palette, max_files=20, max_bytes=MAX_BYTES)


def test_oversized_file_rejected(palette) -> None:
    with pytest.raises(ValidationError, match="too large"):
        validate_batch([_file(data=b"x" * (MAX_BYTES + 1))], palette, max_files=20, max_bytes=MAX_BYTES)


def test_file_at_ceiling_accepted(palette) -> None:
    validate_batch([_file(data=b"x" * MAX_BYTES)], palette, max_files=20, max_bytes=MAX_BYTES)


def test_empty_file_rejected(palette) -> None:
    with pytest.raises(ValidationError, match="empty"):
        validate_batch([_file(data=b"")], palette, max_files=20, max_bytes=MAX_BYTES)


@pytest.mark.parametrize("missing", ["primary", "accent", "light"])
def test_missing_palette_field_rejected(palette, missing) -> None:
    palette.pop(missing)
    with pytest.raises(ValidationError, match=missing):
        validate_batch([_file()], palette, max_files=20, max_bytes=MAX_BYTES)


def test_blank_palette_field_rejected(palette) -> None:
    palette["light"] = "   "
    with pytest.raises(ValidationError, match="Missing color"):
        validate_batch([_file()], palette, max_files=20, max_bytes=MAX_BYTES)


@pytest.mark.parametrize("value", ["red", "#12345", "ff0000", "#gggggg", "#ff0000;"])
def test_non_hex_colors_rejected(value) -> None:
    with pytest.raises(ValidationError):
        normalize_color(value)


def test_record_id_shape() -> None:
    assert is_record_id("3f2b8c1e-9a4d-4c7e-8f21-0b6d5e4a3c2f")
    assert is_record_id("3F2B8C1E-9A4D-4C7E-8F21-0B6D5E4A3C2F")
    assert not is_record_id("3f2b8c1e9a4d4c7e8f210b6d5e4a3c2f")
    assert not is_record_id("3f2b8c1e-9a4d-4c7e-8f21-0b6d5e4a3c2f\n")
    assert not is_record_id("not-a-uuid")
    assert not is_record_id("")


@pytest.mark.parametrize("name", ["..", "../etc/passwd", "a/b.webp", "a\\b.webp", "123-abc..webp"])
def test_traversal_names_rejected(name) -> None:
    with pytest.raises(BlobNameRejectedError):
        check_blob_name(name)


@pytest.mark.parametrize(
    "name",
    ["abc.webp", "123-abc.png", "123_abc.webp", "123-abc.webp\n", "-abc.webp", "123-.webp", "123-a b.webp"],
)
def test_malformed_names_rejected(name) -> None:
    with pytest.raises(InvalidBlobNameError):
        check_blob_name(name)


def test_generated_name_shape_accepted() -> None:
    assert check_blob_name("1718031234567-k3x9qz.webp") == "1718031234567-k3x9qz.webp"
