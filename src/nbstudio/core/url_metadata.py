"""URL metadata extraction for the contact icon generator.

Given a contact's website, the icon generator feeds the page title and meta
description into the prompt and attaches the page's ``og:image`` as an extra
reference image.  Scraping is strictly best-effort: any network failure,
non-2xx status, or non-HTML response yields ``None`` and icon generation
carries on without it.

Extraction uses regular expressions rather than a full HTML parser because
only three fields from the document head are needed.  Both attribute orders
(``name`` before ``content`` and the reverse) are recognised.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 5.0
MAX_OG_IMAGE_BYTES = 4 * 1024 * 1024

USER_AGENT = "Mozilla/5.0 (compatible; NBStudio/1.0)"

_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
_OG_IMAGE_RE = re.compile(
    r"""<meta[^>]+property=["']og:image["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE
)
_OG_IMAGE_REVERSED_RE = re.compile(
    r"""<meta[^>]+content=["']([^"']+)["'][^>]+property=["']og:image["']""", re.IGNORECASE
)


@dataclass(frozen=True)
class UrlMetadata:
    """Metadata scraped from a web page.  Any field may be missing."""

    title: str | None = None
    description: str | None = None
    og_image: str | None = None


def extract_title(document: str) -> str | None:
    match = _TITLE_RE.search(document)
    return html.unescape(match.group(1).strip()) if match else None


def extract_meta_content(document: str, name: str) -> str | None:
    """Return the ``content`` of ``<meta name="{name}">``, in either attribute order."""
    escaped = re.escape(name)
    pattern = re.compile(
        rf"""<meta[^>]+name=["']{escaped}["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE
    )
    match = pattern.search(document)
    if match:
        return html.unescape(match.group(1).strip())

    reversed_pattern = re.compile(
        rf"""<meta[^>]+content=["']([^"']+)["'][^>]+name=["']{escaped}["']""", re.IGNORECASE
    )
    match = reversed_pattern.search(document)
    return html.unescape(match.group(1).strip()) if match else None


def extract_og_image(document: str) -> str | None:
    match = _OG_IMAGE_RE.search(document) or _OG_IMAGE_REVERSED_RE.search(document)
    return match.group(1).strip() if match else None


def parse_metadata(document: str) -> UrlMetadata:
    return UrlMetadata(
        title=extract_title(document),
        description=extract_meta_content(document, "description"),
        og_image=extract_og_image(document),
    )


async def fetch_url_metadata(
    url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = FETCH_TIMEOUT_SECONDS,
) -> UrlMetadata | None:
    """Fetch ``url`` and extract its title, description, and og:image.

    Args:
        url: Page to fetch.
        client: Optional shared client.  A short-lived one is created when
            omitted.
        timeout: Request timeout in seconds.

    Returns:
        The extracted metadata (fields may be ``None``), or ``None`` if the
        page could not be fetched or is not HTML.
    """
    headers = {"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"}
    try:
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as own_client:
                response = await own_client.get(url, headers=headers)
        else:
            response = await client.get(url, headers=headers, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Failed to fetch metadata from %s: %s", url, e)
        return None

    if not response.is_success:
        logger.warning("Metadata fetch from %s returned HTTP %d", url, response.status_code)
        return None

    content_type = response.headers.get("content-type", "")
    if "text/html" not in content_type:
        logger.info("Skipping metadata for %s (content type %r)", url, content_type)
        return None

    return parse_metadata(response.text)


async def fetch_og_image(
    image_url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = FETCH_TIMEOUT_SECONDS,
) -> tuple[bytes, str] | None:
    """Download an og:image for use as a reference image.

    Args:
        image_url: Absolute image URL.
        client: Optional shared client.
        timeout: Request timeout in seconds.

    Returns:
        ``(data, mime_type)``, or ``None`` if the download failed, the
        response is not an image, or it exceeds :data:`MAX_OG_IMAGE_BYTES`.
    """
    headers = {"Accept": "image/*"}
    try:
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as own_client:
                response = await own_client.get(image_url, headers=headers)
        else:
            response = await client.get(image_url, headers=headers, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Failed to fetch og:image %s: %s", image_url, e)
        return None

    if not response.is_success:
        return None

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        return None

    data = response.content
    if len(data) > MAX_OG_IMAGE_BYTES:
        logger.info("Skipping og:image %s (%d bytes)", image_url, len(data))
        return None

    return data, content_type.split(";")[0].strip()
