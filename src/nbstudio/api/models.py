"""Pydantic request and response models for the NB Studio API.

FastAPI uses these models for request validation, serialisation, and OpenAPI
documentation.  Multipart routes (image uploads) take their fields directly
as ``Form``/``File`` parameters and only use the response models here.

Models
------
PromptGenerateRequest
    Payload for ``POST /api/prompt-generate``.
ImageResult
    A single generated image, base64-encoded.
FlipbookResult
    The frames produced by ``POST /api/create-flipbook``.
SessionInfo
    Response of ``GET /api/auth/session``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PromptGenerateRequest(BaseModel):
    """Request body for the ``POST /api/prompt-generate`` endpoint.

    Attributes:
        prompt: Free-text description of the image to generate.  Blank
            prompts are rejected by the route with a 400.
    """

    prompt: str = Field(
        default="",
        description="Description of the image to generate.",
    )


class ImageResult(BaseModel):
    """A generated image.

    Attributes:
        image_base64: Base64-encoded image bytes.
        mime_type: MIME type of the image (defaults to ``image/png`` when
            Gemini does not report one).
    """

    image_base64: str = Field(
        ...,
        description="Base64-encoded image bytes.",
    )
    mime_type: str = Field(
        default="image/png",
        description="MIME type of the image.",
    )


class FlipbookResult(BaseModel):
    """Frames of a flipbook, in story order."""

    frames: list[ImageResult] = Field(
        ...,
        description="Generated frames in story order.",
    )


class SessionInfo(BaseModel):
    """Current authentication state."""

    authenticated: bool = Field(
        ...,
        description="True when a user is signed in.",
    )
    email: str | None = Field(
        default=None,
        description="Email of the signed-in user.",
    )
    name: str | None = Field(
        default=None,
        description="Display name of the signed-in user.",
    )
