"""NB Studio — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The application follows a stateless REST pattern:

- **Authentication** is a signed session cookie established by Google OAuth
  (see :mod:`nbstudio.api.auth`).  Every generation route depends on
  :func:`~nbstudio.api.auth.require_session`.
- **Image generation** is delegated to
  :class:`~nbstudio.core.gemini_client.GeminiImageClient`, created once at
  startup when an API key is configured.
- **Nothing is persisted** — uploads are validated, forwarded to Gemini, and
  the first image of the response is relayed back as base64.

Each generation route follows the same pipeline: session check (401) → API
key check (500) → form validation (400/413/415) → prompt compilation →
Gemini call → 502 when no image came back, 500 when the call failed.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/config``               Presets, icon styles, phases, limits
POST      ``/api/edit-image``           Preset edit of one (or two) images
POST      ``/api/create-flipbook``      Four-frame story from one image
POST      ``/api/freestyle-edit``       Free-text edit of 1-5 images
POST      ``/api/prompt-generate``      Text-only generation
POST      ``/api/icon-generate``        Contact icon generation
\\*        ``/api/auth/*``               See :mod:`nbstudio.api.auth`
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    nbstudio

Direct invocation::

    python -m nbstudio.api.main
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from nbstudio import __version__
from nbstudio.api.auth import SessionUser, require_session
from nbstudio.api.auth import router as auth_router
from nbstudio.api.models import FlipbookResult, ImageResult, PromptGenerateRequest
from nbstudio.core.config import config
from nbstudio.core.gemini_client import (
    GeminiImageClient,
    GeneratedImage,
    GenerationError,
    ImagePayload,
)
from nbstudio.core.phases import PHASE_SEQUENCES
from nbstudio.core.presets import load_presets
from nbstudio.core.prompt_builder import (
    DUAL_IMAGE_HINT,
    FLIPBOOK_FRAME_COUNT,
    ICON_STYLES,
    build_flipbook_frame_prompt,
    build_freestyle_prompt,
    build_icon_prompt,
    build_prompt_only_prompt,
)
from nbstudio.core.url_metadata import fetch_og_image, fetch_url_metadata
from nbstudio.core.validation import (
    UploadValidationError,
    validate_image_count,
    validate_prompt_text,
    validate_upload,
)

logger = logging.getLogger(__name__)

MAX_FREESTYLE_IMAGES = 5
MAX_ICON_IMAGES = 3

# ---------------------------------------------------------------------------
# Application lifecycle — Gemini client setup.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates a :class:`GeminiImageClient` and stores it on ``app.state``
        when ``NBSTUDIO_GEMINI_API_KEY`` is set.  Without a key the routes
        still validate requests but answer 500 before calling Gemini.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    if config.gemini_api_key:
        app.state.gemini_client = GeminiImageClient(
            api_key=config.gemini_api_key,
            model=config.gemini_image_model,
        )
        logger.info("Gemini client initialised (model=%s).", config.gemini_image_model)
    else:
        app.state.gemini_client = None
        logger.warning("NBSTUDIO_GEMINI_API_KEY is not set; generation routes will fail.")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    app.state.gemini_client = None


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="NB Studio",
    description="Family image editing and generation API backed by Google Gemini.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not config.session_secret:
    logger.warning(
        "NBSTUDIO_SESSION_SECRET is not set; using an ephemeral secret "
        "(sessions will not survive a restart)."
    )
app.add_middleware(
    SessionMiddleware,
    secret_key=config.session_secret or secrets.token_urlsafe(32),
    same_site="lax",
)

app.include_router(auth_router)


# ---------------------------------------------------------------------------
# Dependencies and helpers.
# ---------------------------------------------------------------------------


def get_gemini_client(request: Request) -> GeminiImageClient:
    """Return the application's Gemini client.

    Raises:
        HTTPException: 500 if no API key is configured.
    """
    client = getattr(request.app.state, "gemini_client", None)
    if client is None:
        raise HTTPException(status_code=500, detail="Gemini API key is not configured.")
    return client


def _validation_http_error(error: UploadValidationError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


async def _read_image(upload: UploadFile, label: str) -> ImagePayload:
    """Read and validate one uploaded image.

    Raises:
        HTTPException: 400/413/415 when validation fails.
    """
    data = await upload.read()
    try:
        mime_type = validate_upload(
            data,
            upload.content_type,
            upload.filename,
            label=label,
            max_bytes=config.max_file_size_bytes,
        )
    except UploadValidationError as e:
        raise _validation_http_error(e) from e
    return ImagePayload(data=data, mime_type=mime_type)


async def _generate(
    client: GeminiImageClient,
    prompt: str,
    images: Sequence[ImagePayload],
    *,
    failure_detail: str,
) -> GeneratedImage:
    """Run one Gemini request, mapping failures to HTTP errors.

    Raises:
        HTTPException: 500 when the call fails, 502 when no image came back.
    """
    try:
        result = await client.generate(prompt, images)
    except GenerationError as e:
        logger.exception("Gemini request failed")
        raise HTTPException(status_code=500, detail=str(e)) from e

    if result is None:
        raise HTTPException(status_code=502, detail=failure_detail)
    return result


def _to_image_result(image: GeneratedImage) -> ImageResult:
    return ImageResult(image_base64=image.to_base64(), mime_type=image.mime_type)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return the static application configuration for the frontend.

    The response includes:

    - ``version`` — API version string.
    - ``presets`` — curated single-edit presets.
    - ``icon_styles`` — selectable contact icon styles.
    - ``phases`` — progress phase sequence per creative mode.
    - ``max_file_size_mb`` — per-file upload ceiling.
    - ``limits`` — per-mode image count limits.
    """
    return {
        "version": __version__,
        "presets": [preset.to_dict() for preset in load_presets()],
        "icon_styles": [style.to_dict() for style in ICON_STYLES],
        "phases": {
            mode: [phase.to_dict() for phase in phases] for mode, phases in PHASE_SEQUENCES.items()
        },
        "max_file_size_mb": config.max_file_size_mb,
        "limits": {
            "freestyle_images": MAX_FREESTYLE_IMAGES,
            "icon_images": MAX_ICON_IMAGES,
            "flipbook_frames": FLIPBOOK_FRAME_COUNT,
        },
    }


@app.post("/api/edit-image")
async def edit_image(
    user: SessionUser = Depends(require_session),
    client: GeminiImageClient = Depends(get_gemini_client),
    prompt: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    image_secondary: UploadFile | None = File(default=None),
) -> ImageResult:
    """Edit one image with a curated preset prompt.

    A second image may be attached for presets that feature two people; the
    model is told which photo is Player 1 and which is Player 2.

    Raises:
        HTTPException: 400 for a missing prompt or image, 413/415 for an
            invalid upload, 500/502 for generation failures.
    """
    try:
        prompt_text = validate_prompt_text(prompt, "Please choose a prompt.")
    except UploadValidationError as e:
        raise _validation_http_error(e) from e

    if image is None:
        raise HTTPException(status_code=400, detail="No image file attached.")

    images = [await _read_image(image, "Image")]
    if image_secondary is not None:
        images.append(await _read_image(image_secondary, "Second image"))
        prompt_text = f"{DUAL_IMAGE_HINT}\n{prompt_text}"

    logger.info("edit-image requested by %s (%d image(s))", user.email, len(images))
    result = await _generate(
        client, prompt_text, images, failure_detail="Failed to generate the image."
    )
    return _to_image_result(result)


@app.post("/api/create-flipbook")
async def create_flipbook(
    user: SessionUser = Depends(require_session),
    client: GeminiImageClient = Depends(get_gemini_client),
    story: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
) -> FlipbookResult:
    """Generate a four-frame flipbook from one reference image.

    Frames are requested sequentially, each as an independent call with the
    same reference image and a frame-specific prompt.

    Raises:
        HTTPException: 400 for a missing story or image, 413/415 for an
            invalid upload, 500 for a failed call, 502 naming the frame
            that came back empty.
    """
    try:
        story_idea = validate_prompt_text(story, "Please enter a story idea.")
    except UploadValidationError as e:
        raise _validation_http_error(e) from e

    if image is None:
        raise HTTPException(status_code=400, detail="No image file attached.")

    reference = await _read_image(image, "Image")

    logger.info("create-flipbook requested by %s", user.email)
    frames: list[ImageResult] = []
    for frame_index in range(FLIPBOOK_FRAME_COUNT):
        frame_prompt = build_flipbook_frame_prompt(story_idea, frame_index)
        result = await _generate(
            client,
            frame_prompt,
            [reference],
            failure_detail=f"Failed to generate frame {frame_index + 1}.",
        )
        frames.append(_to_image_result(result))

    return FlipbookResult(frames=frames)


@app.post("/api/freestyle-edit")
async def freestyle_edit(
    user: SessionUser = Depends(require_session),
    client: GeminiImageClient = Depends(get_gemini_client),
    prompt: str | None = Form(default=None),
    images: list[UploadFile] | None = File(default=None),
    image: UploadFile | None = File(default=None),
) -> ImageResult:
    """Edit or blend 1-5 reference images following free-text instructions.

    Images are taken from the repeated ``images`` field; a single ``image``
    field is accepted when ``images`` is absent.

    Raises:
        HTTPException: 400 for a missing prompt or a bad image count,
            413/415 for an invalid upload, 500/502 for generation failures.
    """
    files = list(images or [])
    if not files and image is not None:
        files.append(image)

    try:
        instructions = validate_prompt_text(prompt, "Please describe the edit.")
        validate_image_count(len(files), maximum=MAX_FREESTYLE_IMAGES, minimum=1)
    except UploadValidationError as e:
        raise _validation_http_error(e) from e

    payloads = [
        await _read_image(upload, f"Image {index + 1}") for index, upload in enumerate(files)
    ]

    logger.info("freestyle-edit requested by %s (%d image(s))", user.email, len(payloads))
    result = await _generate(
        client,
        build_freestyle_prompt(instructions),
        payloads,
        failure_detail="Failed to generate the image.",
    )
    return _to_image_result(result)


@app.post("/api/prompt-generate")
async def prompt_generate(
    req: PromptGenerateRequest,
    user: SessionUser = Depends(require_session),
    client: GeminiImageClient = Depends(get_gemini_client),
) -> ImageResult:
    """Generate an image from a text prompt alone.

    Raises:
        HTTPException: 400 for a blank prompt, 500/502 for generation
            failures.
    """
    try:
        prompt_text = validate_prompt_text(req.prompt, "Please enter a prompt.")
    except UploadValidationError as e:
        raise _validation_http_error(e) from e

    logger.info("prompt-generate requested by %s", user.email)
    result = await _generate(
        client,
        build_prompt_only_prompt(prompt_text),
        [],
        failure_detail="Failed to generate the image.",
    )
    return _to_image_result(result)


@app.post("/api/icon-generate")
async def icon_generate(
    user: SessionUser = Depends(require_session),
    client: GeminiImageClient = Depends(get_gemini_client),
    name: str | None = Form(default=None),
    url: str | None = Form(default=None),
    style: str | None = Form(default=None),
    custom_prompt: str | None = Form(default=None, alias="customPrompt"),
    images: list[UploadFile] | None = File(default=None),
) -> ImageResult:
    """Generate a square contact icon.

    When a URL is given, its title and description are added to the prompt
    and its og:image is attached as an extra reference image.  Scraping
    failures are not fatal.

    Raises:
        HTTPException: 400 for a missing name or too many images, 413/415
            for an invalid upload, 500/502 for generation failures.
    """
    files = list(images or [])
    try:
        contact_name = validate_prompt_text(name, "Please enter a contact name.")
        validate_image_count(len(files), maximum=MAX_ICON_IMAGES)
    except UploadValidationError as e:
        raise _validation_http_error(e) from e

    payloads = [
        await _read_image(upload, f"Image {index + 1}") for index, upload in enumerate(files)
    ]

    page_url = url.strip() if url and url.strip() else None
    url_meta = None
    if page_url:
        url_meta = await fetch_url_metadata(page_url, timeout=config.url_fetch_timeout_seconds)

    if url_meta is not None and url_meta.og_image:
        og_image = await fetch_og_image(url_meta.og_image, timeout=config.url_fetch_timeout_seconds)
        if og_image is not None:
            data, mime_type = og_image
            payloads.append(ImagePayload(data=data, mime_type=mime_type))

    icon_prompt = build_icon_prompt(
        name=contact_name,
        style=style,
        url_meta=url_meta,
        custom_prompt=custom_prompt,
    )

    logger.info(
        "icon-generate requested by %s (style=%s, url=%s, %d image(s))",
        user.email,
        style or "auto",
        page_url,
        len(payloads),
    )
    result = await _generate(
        client, icon_prompt, payloads, failure_detail="Failed to generate the icon."
    )
    return _to_image_result(result)


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port, and log level from :data:`~nbstudio.core.config.config`
    (``NBSTUDIO_SERVER_HOST``, ``NBSTUDIO_SERVER_PORT``,
    ``NBSTUDIO_LOG_LEVEL``).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``nbstudio`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "nbstudio.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
