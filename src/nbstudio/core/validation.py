"""Validation utilities for uploaded reference images."""

import logging
from pathlib import PurePath

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})

# Non-standard types some browsers and OSes send for JPEG files.
MIME_TYPE_NORMALIZATION = {
    "image/jpg": "image/jpeg",
}

EXTENSION_TO_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

MAX_FILE_SIZE_MB = 8
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

SUPPORTED_FORMATS_MESSAGE = "Please use a JPG, PNG, or WebP image."


class UploadValidationError(Exception):
    """User-friendly upload validation error.

    The message is intended to be displayed directly to the user.  The
    status code is the HTTP status the API should answer with.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def resolve_mime_type(content_type: str | None, filename: str | None) -> str | None:
    """Resolve the effective MIME type of an upload.

    The declared content type wins when it (after normalisation) is on the
    allow-list.  Otherwise the filename extension is consulted.

    Args:
        content_type: Content type declared by the client, may be empty.
        filename: Original filename, may be empty.

    Returns:
        One of :data:`ALLOWED_MIME_TYPES`, or ``None`` if neither the
        declared type nor the extension is supported.
    """
    raw_type = (content_type or "").split(";")[0].strip().lower()
    if raw_type:
        normalized = MIME_TYPE_NORMALIZATION.get(raw_type, raw_type)
        if normalized in ALLOWED_MIME_TYPES:
            return normalized

    if filename:
        extension = PurePath(filename).suffix.lstrip(".").lower()
        mime_from_extension = EXTENSION_TO_MIME.get(extension)
        if mime_from_extension in ALLOWED_MIME_TYPES:
            return mime_from_extension

    return None


def validate_upload(
    data: bytes,
    content_type: str | None,
    filename: str | None,
    *,
    label: str = "Image",
    max_bytes: int = MAX_FILE_SIZE_BYTES,
) -> str:
    """Validate one uploaded image.

    Checks, in order: the file is not empty, it is within the size ceiling,
    and its type resolves to an allowed image type.

    Args:
        data: Raw file bytes.
        content_type: Declared content type.
        filename: Original filename.
        label: Name used in messages (e.g. ``"Image 2"``).
        max_bytes: Size ceiling in bytes.

    Returns:
        The resolved MIME type.

    Raises:
        UploadValidationError: 400 for an empty file, 413 for an oversized
            file, 415 for an unsupported type.
    """
    if len(data) == 0:
        raise UploadValidationError(
            f"{label} is an empty file. Please try a different image.", status_code=400
        )

    if len(data) > max_bytes:
        max_mb = max_bytes // (1024 * 1024)
        raise UploadValidationError(
            f"{label} is too large. Please use an image of {max_mb}MB or less.",
            status_code=413,
        )

    mime_type = resolve_mime_type(content_type, filename)
    if mime_type is None:
        logger.warning(f"Rejected upload {filename!r} with content type {content_type!r}")
        raise UploadValidationError(
            f"{label} has an unsupported format. {SUPPORTED_FORMATS_MESSAGE}",
            status_code=415,
        )

    return mime_type


def validate_image_count(count: int, maximum: int, minimum: int = 0) -> None:
    """Validate the number of uploaded images.

    Args:
        count: Number of images received.
        maximum: Maximum allowed.
        minimum: Minimum required.

    Raises:
        UploadValidationError: 400 if the count is out of range.
    """
    if count < minimum:
        if minimum == 1:
            raise UploadValidationError("Please upload at least one image.")
        raise UploadValidationError(f"Please upload at least {minimum} images.")

    if count > maximum:
        raise UploadValidationError(f"You can upload up to {maximum} images.")


def validate_prompt_text(text: str | None, message: str) -> str:
    """Return the stripped prompt text, raising if it is missing or blank.

    Args:
        text: Raw form value.
        message: Error shown to the user when the text is blank.

    Raises:
        UploadValidationError: 400 if the text is missing or blank.
    """
    if text is None or not text.strip():
        raise UploadValidationError(message)
    return text.strip()
