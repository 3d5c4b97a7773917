"""Downscaling of reference images before upload.

Phone photos are routinely larger than the API's upload ceiling and far
larger than Gemini needs.  :func:`resize_image` shrinks them to fit inside a
bounding box while keeping the aspect ratio and re-encodes them in their
original format.  Images that already fit and are small enough are returned
untouched.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from nbstudio.core.validation import MIME_TYPE_NORMALIZATION, SUPPORTED_FORMATS_MESSAGE

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 1920
DEFAULT_MAX_HEIGHT = 1920
DEFAULT_QUALITY = 85
DEFAULT_MAX_FILE_SIZE_MB = 2

# MIME type -> Pillow format name.
_PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


class ImageOptimizationError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""


def calculate_new_dimensions(
    original_width: int,
    original_height: int,
    max_width: int,
    max_height: int,
) -> tuple[int, int]:
    """Fit ``(original_width, original_height)`` inside the bounding box.

    Images that already fit are returned unchanged; this never upscales.

    Returns:
        ``(width, height)`` rounded to whole pixels.
    """
    if original_width <= max_width and original_height <= max_height:
        return original_width, original_height

    aspect_ratio = original_width / original_height

    new_width = float(max_width)
    new_height = max_width / aspect_ratio

    # Width-bound fit is too tall; fit to height instead.
    if new_height > max_height:
        new_height = float(max_height)
        new_width = max_height * aspect_ratio

    return round(new_width), round(new_height)


def resize_image(
    data: bytes,
    mime_type: str,
    *,
    max_width: int = DEFAULT_MAX_WIDTH,
    max_height: int = DEFAULT_MAX_HEIGHT,
    quality: int = DEFAULT_QUALITY,
    max_file_size_mb: float = DEFAULT_MAX_FILE_SIZE_MB,
) -> bytes:
    """Downscale an encoded image so it fits the bounding box.

    Args:
        data: Encoded image bytes.
        mime_type: MIME type of ``data`` (JPEG, PNG, or WebP).
        max_width: Maximum output width.
        max_height: Maximum output height.
        quality: Encoder quality for lossy formats (1-100).
        max_file_size_mb: Images within the bounding box are still
            re-encoded when larger than this.

    Returns:
        The original bytes when no change is needed, otherwise the
        re-encoded image in the same format.

    Raises:
        ImageOptimizationError: If the type is unsupported or the bytes
            cannot be decoded.
    """
    normalized = MIME_TYPE_NORMALIZATION.get(mime_type.lower(), mime_type.lower())
    pil_format = _PIL_FORMATS.get(normalized)
    if pil_format is None:
        raise ImageOptimizationError(f"Unsupported image format. {SUPPORTED_FORMATS_MESSAGE}")

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            width, height = image.size
            new_width, new_height = calculate_new_dimensions(width, height, max_width, max_height)

            if (new_width, new_height) == (width, height) and len(data) <= max_file_size_mb * 1024 * 1024:
                return data

            if (new_width, new_height) != (width, height):
                resized = image.resize((new_width, new_height), Image.Resampling.LANCZOS)
            else:
                resized = image.copy()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageOptimizationError(f"Failed to read image: {e}") from e

    # JPEG has no alpha channel.
    if pil_format == "JPEG" and resized.mode not in ("RGB", "L"):
        resized = resized.convert("RGB")

    buffer = io.BytesIO()
    save_kwargs = {"optimize": True}
    if pil_format in ("JPEG", "WEBP"):
        save_kwargs["quality"] = quality
    resized.save(buffer, format=pil_format, **save_kwargs)

    logger.debug(
        "Resized image %dx%d -> %dx%d (%d -> %d bytes)",
        width,
        height,
        new_width,
        new_height,
        len(data),
        buffer.tell(),
    )
    return buffer.getvalue()
