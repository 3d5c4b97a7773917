"""Async HTTP client and command-line front end for the NB Studio API.

:class:`StudioClient` wraps the five generation routes with ``httpx``.
Reference images are downscaled with
:func:`~nbstudio.core.image_optimization.resize_image` before upload, and
any non-2xx answer is raised as :class:`StudioClientError` carrying the
server's ``detail`` message.

The ``nbstudio-client`` console script drives one request per invocation,
renders a text progress bar on stderr through
:func:`~nbstudio.ui.flow.run_with_progress`, and writes the resulting
image(s) to disk.

Usage
-----
::

    nbstudio-client --session-cookie "$COOKIE" edit \\
        --image kid.jpg --preset figurine --out figurine.png

    nbstudio-client --session-cookie "$COOKIE" flipbook \\
        --image dog.jpg --story "The dog learns to skateboard" --out-dir frames/
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import mimetypes
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx

from nbstudio.core.config import config
from nbstudio.core.image_optimization import ImageOptimizationError, resize_image
from nbstudio.core.phases import get_phases
from nbstudio.core.presets import get_preset, load_presets
from nbstudio.core.progress import ProgressSnapshot
from nbstudio.ui.flow import run_with_progress

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:7860"
DEFAULT_TIMEOUT_SECONDS = 180.0
SESSION_COOKIE_NAME = "session"
PROGRESS_BAR_WIDTH = 30


class StudioClientError(Exception):
    """Raised when the API answers with a non-success status."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


@dataclass(frozen=True)
class UploadImage:
    """An image to attach to a request."""

    filename: str
    data: bytes
    mime_type: str

    @classmethod
    def from_path(cls, path: str | Path) -> UploadImage:
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, data=path.read_bytes(), mime_type=mime_type)


@dataclass(frozen=True)
class ResultImage:
    """A generated image decoded from an API response."""

    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        return mimetypes.guess_extension(self.mime_type) or ".png"


def _decode_image(payload: dict) -> ResultImage:
    return ResultImage(
        data=base64.b64decode(payload["image_base64"]),
        mime_type=payload.get("mime_type") or "image/png",
    )


class StudioClient:
    """Async client for the NB Studio REST API.

    Args:
        base_url: Server root URL.
        session_cookie: Value of the signed session cookie obtained by
            signing in through the browser.
        timeout: Per-request timeout in seconds.
        optimize_uploads: Downscale reference images before upload.
        transport: Optional ``httpx`` transport, used by tests.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session_cookie: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        optimize_uploads: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cookies = {SESSION_COOKIE_NAME: session_cookie} if session_cookie else None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            cookies=cookies,
            timeout=timeout,
            transport=transport,
        )
        self._optimize_uploads = optimize_uploads

    async def __aenter__(self) -> StudioClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- Request helpers ----------------------------------------------------

    def _prepare(self, image: UploadImage) -> UploadImage:
        if not self._optimize_uploads:
            return image
        try:
            data = resize_image(image.data, image.mime_type)
        except ImageOptimizationError as e:
            # The server performs the authoritative type check.
            logger.warning("Uploading %s unmodified: %s", image.filename, e)
            return image
        return UploadImage(filename=image.filename, data=data, mime_type=image.mime_type)

    def _file_field(self, field: str, image: UploadImage) -> tuple[str, tuple[str, bytes, str]]:
        prepared = self._prepare(image)
        return field, (prepared.filename, prepared.data, prepared.mime_type)

    async def _post(self, path: str, **kwargs) -> dict:
        response = await self._client.post(path, **kwargs)
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("detail"):
            detail = body["detail"]
        else:
            detail = response.text or response.reason_phrase
        raise StudioClientError(response.status_code, str(detail))

    # -- Creative modes -----------------------------------------------------

    async def edit_image(
        self,
        prompt: str,
        image: UploadImage,
        secondary_image: UploadImage | None = None,
    ) -> ResultImage:
        """Apply a preset prompt to one image (or two)."""
        files = [self._file_field("image", image)]
        if secondary_image is not None:
            files.append(self._file_field("image_secondary", secondary_image))
        payload = await self._post("/api/edit-image", data={"prompt": prompt}, files=files)
        return _decode_image(payload)

    async def create_flipbook(self, story: str, image: UploadImage) -> list[ResultImage]:
        """Generate the four flipbook frames for ``story``."""
        payload = await self._post(
            "/api/create-flipbook",
            data={"story": story},
            files=[self._file_field("image", image)],
        )
        return [_decode_image(frame) for frame in payload["frames"]]

    async def freestyle_edit(self, prompt: str, images: Sequence[UploadImage]) -> ResultImage:
        """Edit or blend up to five images following ``prompt``."""
        files = [self._file_field("images", image) for image in images]
        payload = await self._post("/api/freestyle-edit", data={"prompt": prompt}, files=files)
        return _decode_image(payload)

    async def prompt_generate(self, prompt: str) -> ResultImage:
        """Generate an image from text alone."""
        payload = await self._post("/api/prompt-generate", json={"prompt": prompt})
        return _decode_image(payload)

    async def icon_generate(
        self,
        name: str,
        *,
        url: str | None = None,
        style: str | None = None,
        custom_prompt: str | None = None,
        images: Sequence[UploadImage] = (),
    ) -> ResultImage:
        """Generate a contact icon."""
        data = {"name": name}
        if url:
            data["url"] = url
        if style:
            data["style"] = style
        if custom_prompt:
            data["customPrompt"] = custom_prompt
        files = [self._file_field("images", image) for image in images]
        payload = await self._post("/api/icon-generate", data=data, files=files or None)
        return _decode_image(payload)


# ---------------------------------------------------------------------------
# Command-line interface.
# ---------------------------------------------------------------------------


def render_progress_bar(snapshot: ProgressSnapshot, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Format a snapshot as a single-line text progress bar."""
    filled = int(width * snapshot.progress_percent / 100)
    bar = "#" * filled + "-" * (width - filled)
    label = snapshot.phase.label if snapshot.phase is not None else ""
    return (
        f"[{bar}] {snapshot.progress_percent:5.1f}%  "
        f"{label} (~{snapshot.estimated_seconds_remaining:.0f}s)"
    )


def _print_progress(snapshot: ProgressSnapshot) -> None:
    sys.stderr.write("\r\033[K" + render_progress_bar(snapshot))
    sys.stderr.flush()


async def _with_progress(mode: str, operation):
    return await run_with_progress(
        get_phases(mode),
        operation,
        on_update=_print_progress,
        tick_interval_ms=config.progress_tick_interval_ms,
    )


def _write_image(image: ResultImage, out: Path) -> Path:
    if not out.suffix:
        out = out.with_suffix(image.extension)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(image.data)
    return out


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nbstudio-client",
        description="Send an image editing or generation request to an NB Studio server.",
    )
    parser.add_argument("--base-url", default=os.environ.get("NBSTUDIO_BASE_URL", DEFAULT_BASE_URL))
    parser.add_argument(
        "--session-cookie",
        default=os.environ.get("NBSTUDIO_SESSION_COOKIE"),
        help="Signed session cookie from a browser sign-in",
    )
    parser.add_argument("--no-optimize", action="store_true", help="Upload images unmodified")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    edit = sub.add_parser("edit", help="Edit one image with a preset or a prompt")
    edit.add_argument("--image", required=True)
    edit.add_argument("--secondary-image")
    group = edit.add_mutually_exclusive_group(required=True)
    group.add_argument("--preset", choices=[preset.id for preset in load_presets()])
    group.add_argument("--prompt")
    edit.add_argument("--out", default="edit")

    flipbook = sub.add_parser("flipbook", help="Create a four-frame flipbook")
    flipbook.add_argument("--image", required=True)
    flipbook.add_argument("--story", required=True)
    flipbook.add_argument("--out-dir", default="flipbook")

    freestyle = sub.add_parser("freestyle", help="Edit or blend up to five images")
    freestyle.add_argument("--image", action="append", required=True, dest="images")
    freestyle.add_argument("--prompt", required=True)
    freestyle.add_argument("--out", default="freestyle")

    prompt = sub.add_parser("prompt", help="Generate an image from text alone")
    prompt.add_argument("--prompt", required=True)
    prompt.add_argument("--out", default="prompt")

    icon = sub.add_parser("icon", help="Generate a contact icon")
    icon.add_argument("--name", required=True)
    icon.add_argument("--url")
    icon.add_argument("--style")
    icon.add_argument("--custom-prompt")
    icon.add_argument("--image", action="append", default=[], dest="images")
    icon.add_argument("--out", default="icon")

    return parser


async def _handle(args: argparse.Namespace, client: StudioClient) -> list[Path]:
    if args.command == "edit":
        prompt = args.prompt or get_preset(args.preset).prompt
        secondary = UploadImage.from_path(args.secondary_image) if args.secondary_image else None
        operation = client.edit_image(prompt, UploadImage.from_path(args.image), secondary)
        image = await _with_progress("edit", operation)
        return [_write_image(image, Path(args.out))]

    if args.command == "flipbook":
        operation = client.create_flipbook(args.story, UploadImage.from_path(args.image))
        frames = await _with_progress("flipbook", operation)
        out_dir = Path(args.out_dir)
        return [
            _write_image(frame, out_dir / f"frame-{index + 1}") for index, frame in enumerate(frames)
        ]

    if args.command == "freestyle":
        images = [UploadImage.from_path(path) for path in args.images]
        operation = client.freestyle_edit(args.prompt, images)
        image = await _with_progress("freestyle", operation)
        return [_write_image(image, Path(args.out))]

    if args.command == "prompt":
        operation = client.prompt_generate(args.prompt)
        image = await _with_progress("prompt", operation)
        return [_write_image(image, Path(args.out))]

    if args.command == "icon":
        operation = client.icon_generate(
            args.name,
            url=args.url,
            style=args.style,
            custom_prompt=args.custom_prompt,
            images=[UploadImage.from_path(path) for path in args.images],
        )
        image = await _with_progress("icon", operation)
        return [_write_image(image, Path(args.out))]

    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace) -> int:
    async with StudioClient(
        args.base_url,
        session_cookie=args.session_cookie,
        optimize_uploads=not args.no_optimize,
    ) as client:
        try:
            written = await _handle(args, client)
        except StudioClientError as e:
            sys.stderr.write(f"\nRequest failed ({e.status_code}): {e.detail}\n")
            return 1
        except httpx.HTTPError as e:
            sys.stderr.write(f"\nCould not reach {args.base_url}: {e}\n")
            return 1

    sys.stderr.write("\n")
    for path in written:
        print(path)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the ``nbstudio-client`` console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
