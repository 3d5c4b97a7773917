"""Shared pytest fixtures for NB Studio tests."""

from __future__ import annotations

import io
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from nbstudio.api.auth import SessionUser, require_session
from nbstudio.api.main import app, get_gemini_client
from nbstudio.core.config import StudioConfig
from nbstudio.core.gemini_client import GeneratedImage
from nbstudio.core.phases import Phase


# ---------------------------------------------------------------------------
# Deterministic time for the progress estimator.
# ---------------------------------------------------------------------------


@dataclass
class FakeTimer:
    due_ms: int
    seq: int
    callback: Callable[..., Any]
    args: tuple
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeScheduler:
    """Manually advanced clock and ``call_later`` scheduler.

    Time is kept in whole milliseconds so boundary values are exact.
    """

    now: int = 0
    timers: list[FakeTimer] = field(default_factory=list)
    _seq: int = 0

    def clock_ms(self) -> int:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        self._seq += 1
        timer = FakeTimer(
            due_ms=self.now + round(delay * 1000),
            seq=self._seq,
            callback=callback,
            args=args,
        )
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def advance(self, ms: int) -> None:
        """Move time forward by ``ms``, firing due timers in order."""
        target = self.now + ms
        while True:
            due = [timer for timer in self.pending if timer.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due_ms, t.seq))
            self.timers.remove(timer)
            self.now = max(self.now, timer.due_ms)
            timer.callback(*timer.args)
        self.now = target


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Create a fake scheduler starting at t=0 ms."""
    return FakeScheduler()


@pytest.fixture
def three_phases() -> tuple[Phase, ...]:
    """Three one-second phases; the last two form the final window."""
    return (
        Phase("a", "A", 1000),
        Phase("b", "B", 1000),
        Phase("c", "C", 1000),
    )


# ---------------------------------------------------------------------------
# Configuration and images.
# ---------------------------------------------------------------------------


@pytest.fixture
def test_config() -> StudioConfig:
    """Create a configuration that ignores the environment's secrets.

    Returns:
        StudioConfig instance for testing
    """
    return StudioConfig(
        gemini_api_key=None,
        session_secret="test-secret",
        google_client_id=None,
        google_client_secret=None,
        allowed_emails="Kid@Example.com, parent@example.com",
    )


def make_image_bytes(width: int, height: int, fmt: str = "PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-colour image with Pillow."""
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = (*color, 255) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, (width, height), fill).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG."""
    return make_image_bytes(64, 48)


# ---------------------------------------------------------------------------
# API fixtures.
# ---------------------------------------------------------------------------


class FakeGeminiClient:
    """Stand-in for GeminiImageClient that records every request.

    ``results`` are returned in order; when exhausted a default PNG is
    returned.  Setting ``error`` makes every call raise it.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list]] = []
        self.results: list[GeneratedImage | None] = []
        self.error: Exception | None = None

    async def generate(self, prompt, images=()):
        self.calls.append((prompt, list(images)))
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return GeneratedImage(data=b"generated-image", mime_type="image/png")


@pytest.fixture
def fake_gemini() -> FakeGeminiClient:
    return FakeGeminiClient()


@pytest.fixture
def test_client(fake_gemini: FakeGeminiClient) -> Generator[TestClient, None, None]:
    """TestClient with a signed-in user and a fake Gemini client."""
    app.dependency_overrides[require_session] = lambda: SessionUser(
        email="kid@example.com", name="Kid"
    )
    app.dependency_overrides[get_gemini_client] = lambda: fake_gemini
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client() -> Generator[TestClient, None, None]:
    """TestClient with no session and no dependency overrides."""
    app.dependency_overrides.clear()
    with TestClient(app) as client:
        yield client


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    """Factory producing encoded images of a given size and format."""
    return make_image_bytes
