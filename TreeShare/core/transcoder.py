from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import TranscodeError

log = logging.getLogger("treeshare.transcoder")

# MPO is how Pillow reports camera JPEGs that carry an MPF segment
DECODABLE_FORMATS = frozenset({"JPEG", "MPO", "PNG", "GIF", "WEBP"})
OUTPUT_FORMAT = "WEBP"
OUTPUT_MEDIA_TYPE = "image/webp"
OUTPUT_EXTENSION = "webp"


@dataclass(frozen=True)
class TranscodedImage:
    data: bytes
    width: int
    height: int
    format: str = OUTPUT_FORMAT
    media_type: str = OUTPUT_MEDIA_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


class Transcoder:
    """
    Decodes any allowed raster image and re-encodes it as WebP.

    The longest side is capped at ``max_dimension``; smaller images keep their
    size. Only the first frame of an animated source is kept.
    """

    def __init__(self, max_dimension: int = 1920, quality: int = 80, max_pixels: int = 50_000_000) -> None:
        self.max_dimension = max_dimension
        self.quality = quality
        self.max_pixels = max_pixels

    def transcode(self, data: bytes, label: str = "image") -> TranscodedImage:
        try:
            with Image.open(io.BytesIO(data)) as source:
                if source.format not in DECODABLE_FORMATS:
                    raise TranscodeError(f"{label}: unsupported image format {source.format}")
                width, height = source.size
                if width * height > self.max_pixels:
                    log.warning("Rejected %s: %dx%d exceeds %d pixels", label, width, height, self.max_pixels)
                    raise TranscodeError(f"{label}: image dimensions too large")
                source.seek(0)
                image = ImageOps.exif_transpose(source)
                image.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)
                image = self._normalize_mode(image)
                buffer = io.BytesIO()
                image.save(buffer, format=OUTPUT_FORMAT, quality=self.quality, method=4)
        except TranscodeError:
            raise
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            EOFError,
            ValueError,
            SyntaxError,
        ) as exc:
            log.warning("Failed to decode %s: %s", label, exc)
            raise TranscodeError(f"{label}: unreadable image") from exc

        return TranscodedImage(data=buffer.getvalue(), width=image.width, height=image.height)

    @staticmethod
    def _normalize_mode(image: Image.Image) -> Image.Image:
        if image.mode in ("RGB", "RGBA"):
            return image
        has_alpha = image.mode in ("LA", "PA") or "transparency" in image.info
        return image.convert("RGBA" if has_alpha else "RGB")
