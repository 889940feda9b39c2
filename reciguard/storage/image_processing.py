"""Validate uploaded image bytes and re-encode them before they hit a store.

Re-encoding through Pillow strips anything that is not pixel data and gives every
stored image the same format.
"""

import io

from PIL import Image, UnidentifiedImageError

from ..errors import StorageError
from ..settings import settings

ALLOWED_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}

# Decompression bomb guard
MAX_WIDTH = 4096
MAX_HEIGHT = 4096

OUTPUT_FORMAT = "WEBP"
OUTPUT_CONTENT_TYPE = "image/webp"
OUTPUT_EXTENSION = "webp"


class ImageValidationError(StorageError):
    """Uploaded bytes are not an acceptable image."""


def prepare_image(data: bytes, max_side: int = 2048) -> bytes:
    """Return WebP bytes for an uploaded image, or raise ImageValidationError."""
    if not data:
        raise ImageValidationError("Empty image upload")
    if len(data) > settings.max_image_bytes:
        raise ImageValidationError(
            f"Image too large: {len(data)} bytes (max {settings.max_image_bytes})"
        )

    try:
        img = Image.open(io.BytesIO(data))
        img.verify()
        # verify() leaves the image unusable
        img = Image.open(io.BytesIO(data))

        if img.format not in ALLOWED_FORMATS:
            raise ImageValidationError(f"Unsupported image format: {img.format}")

        width, height = img.size
        if width > MAX_WIDTH or height > MAX_HEIGHT:
            raise ImageValidationError(f"Image dimensions too large: {width}x{height}")

        if width > max_side or height > max_side:
            img.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)

        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")

        out = io.BytesIO()
        img.save(out, format=OUTPUT_FORMAT, quality=85)
        return out.getvalue()
    except ImageValidationError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageValidationError(f"Invalid or corrupted image: {e}") from e
