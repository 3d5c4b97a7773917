"""Google Gemini image generation client.

This module provides :class:`GeminiImageClient`, the single point through
which NB Studio talks to Gemini.  Every creative mode reduces to the same
call: zero or more reference images followed by one instruction string, with
the first inline image in the response returned to the caller.

Key Responsibilities
--------------------
- **Request assembly**: reference images are sent first as inline byte
  parts, then the text prompt, all in a single ``user`` turn.
- **Result extraction**: the first part carrying inline image data wins;
  a missing MIME type defaults to ``image/png``.  A response with no image
  yields ``None`` so callers can map it to a 502.
- **Error wrapping**: SDK and transport errors surface as
  :class:`GenerationError` with a readable message.

Usage
-----
::

    client = GeminiImageClient(api_key="...", model="gemini-2.5-flash-image")
    result = await client.generate(
        "Turn this photo into a watercolour painting.",
        images=[ImagePayload(data=photo_bytes, mime_type="image/jpeg")],
    )
    if result is not None:
        Path("out.png").write_bytes(result.data)
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_RESULT_MIME_TYPE = "image/png"


class GenerationError(Exception):
    """Raised when the remote generation call fails."""


@dataclass(frozen=True)
class ImagePayload:
    """A reference image sent to Gemini."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class GeneratedImage:
    """An image returned by Gemini."""

    data: bytes
    mime_type: str = DEFAULT_RESULT_MIME_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def extract_first_image(response) -> GeneratedImage | None:
    """Return the first inline image of a ``generate_content`` response.

    Args:
        response: A ``GenerateContentResponse`` (or any object with the same
            ``candidates[0].content.parts[*].inline_data`` shape).

    Returns:
        The image, or ``None`` if the response carries no image data.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        if not data:
            continue
        # Older SDK builds hand back base64 text rather than raw bytes.
        if isinstance(data, str):
            data = base64.b64decode(data)
        mime_type = getattr(inline_data, "mime_type", None) or DEFAULT_RESULT_MIME_TYPE
        return GeneratedImage(data=data, mime_type=mime_type)

    return None


class GeminiImageClient:
    """Thin async wrapper around the ``google-genai`` SDK.

    Attributes:
        model: Gemini model identifier used for every request.
    """

    def __init__(self, api_key: str, model: str) -> None:
        """Create the client.

        Args:
            api_key: Gemini API key.
            model: Gemini model identifier.
        """
        self.model = model
        self._client = genai.Client(api_key=api_key)

    async def generate(
        self,
        prompt: str,
        images: Sequence[ImagePayload] = (),
    ) -> GeneratedImage | None:
        """Request one image from Gemini.

        Args:
            prompt: The instruction text.
            images: Reference images, in order of importance.

        Returns:
            The generated image, or ``None`` if Gemini returned no image.

        Raises:
            GenerationError: If the API call fails.
        """
        parts = [types.Part.from_bytes(data=image.data, mime_type=image.mime_type) for image in images]
        parts.append(types.Part.from_text(text=prompt))

        logger.info(
            "Requesting image from %s (%d reference image(s), prompt %d chars)",
            self.model,
            len(images),
            len(prompt),
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise GenerationError(str(e) or "Unexpected error while generating the image.") from e

        result = extract_first_image(response)
        if result is None:
            logger.warning("Gemini response from %s contained no image", self.model)
        return result
