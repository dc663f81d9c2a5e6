"""
Cheap checks that run before any decoding or storage work.

Covers the upload batch (count, MIME type, size), the palette fields and the
shape of identifiers that arrive in URL paths.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional, Sequence

from .errors import BlobNameRejectedError, InvalidBlobNameError, ValidationError
from .models import Palette, UploadedFile

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
PALETTE_FIELDS = ("primary", "accent", "light")

RECORD_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
BLOB_NAME_PATTERN = re.compile(r"[0-9]+-[A-Za-z0-9]+\.webp")
_HEX_COLOR = re.compile(r"#(?:[0-9a-f]{3}|[0-9a-f]{6})")
_TRAVERSAL_TOKENS = ("..", "/", "\\")


def normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def normalize_color(value: str) -> str:
    color = value.strip().lower()
    if not _HEX_COLOR.fullmatch(color):
        raise ValidationError(f"Invalid color value: {value!r}")
    if len(color) == 4:
        color = "#" + "".join(ch * 2 for ch in color[1:])
    return color


def validate_palette(fields: Mapping[str, Optional[str]]) -> Palette:
    missing = [name for name in PALETTE_FIELDS if not (fields.get(name) or "").strip()]
    if missing:
        raise ValidationError(f"Missing color configuration: {', '.join(missing)}")
    return Palette(**{name: normalize_color(fields[name]) for name in PALETTE_FIELDS})


def validate_file(upload: UploadedFile, max_bytes: int) -> None:
    content_type = normalize_content_type(upload.content_type)
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"{upload.filename or 'file'}: only JPEG, PNG, GIF, and WebP images are allowed"
        )
    if upload.size == 0:
        raise ValidationError(f"{upload.filename or 'file'}: empty upload")
    if upload.size > max_bytes:
        raise ValidationError(
            f"{upload.filename or 'file'}: file too large (max {max_bytes // (1024 * 1024)}MB)"
        )


def validate_batch(
    files: Sequence[UploadedFile],
    palette_fields: Mapping[str, Optional[str]],
    *,
    max_files: int,
    max_bytes: int,
) -> Palette:
    """Validate a whole upload request and return the normalized palette."""
    if not files:
        raise ValidationError("No files uploaded")
    if len(files) > max_files:
        raise ValidationError(f"Too many files (max {max_files})")
    palette = validate_palette(palette_fields)
    for upload in files:
        validate_file(upload, max_bytes)
    return palette


def is_record_id(value: str) -> bool:
    return bool(RECORD_ID_PATTERN.fullmatch(value))


def check_blob_name(name: str) -> str:
    if any(token in name for token in _TRAVERSAL_TOKENS):
        raise BlobNameRejectedError("Invalid filename")
    if not BLOB_NAME_PATTERN.fullmatch(name):
        raise InvalidBlobNameError("Invalid filename format")
    return name
