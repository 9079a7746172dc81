"""Turn image references into something the judgment API can consume."""

import base64
import hashlib
import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from offer_scout.config import settings

logger = logging.getLogger(__name__)

HTTP_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

EXTENSION_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"


class ImageDownloadError(RuntimeError):
    """Raised when a remote image cannot be inlined."""
    pass


def is_http_url(value: str) -> bool:
    return bool(HTTP_URL_PATTERN.match(value))


def is_file_path(value: str) -> bool:
    return value.startswith("/") or value.startswith(".")


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def read_local_image_as_data_url(path: str) -> str:
    """Read a local image file into a data URI; MIME comes from the extension."""
    resolved = Path(path).resolve()
    mime = EXTENSION_MIME.get(resolved.suffix.lower(), "application/octet-stream")
    return to_data_url(resolved.read_bytes(), mime)


def cache_path_for(url: str, cache_dir: str) -> Path:
    """Cache file for a URL, named by the SHA-256 of the URL."""
    return Path(cache_dir) / hashlib.sha256(url.encode("utf-8")).hexdigest()


async def download_image(
    url: str,
    cache_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Download a remote image as a data URI, caching the result on disk.

    Raises:
        ImageDownloadError: On a non-success status or an oversized body
    """
    cache_dir = cache_dir or settings.image_cache_dir
    max_bytes = max_bytes or settings.image_max_bytes

    cache_file = cache_path_for(url, cache_dir)
    if cache_file.exists():
        return cache_file.read_text(encoding="utf-8")

    headers = {"User-Agent": settings.user_agent, "Accept": IMAGE_ACCEPT}
    if settings.marketplace_base_url:
        headers["Referer"] = settings.marketplace_base_url

    if client is None:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True) as owned:
            response = await owned.get(url, headers=headers)
    else:
        response = await client.get(url, headers=headers)

    if not response.is_success:
        raise ImageDownloadError(f"Failed to download image: HTTP {response.status_code} for {url}")

    body = response.content
    if len(body) > max_bytes:
        raise ImageDownloadError(f"Image exceeds max size ({len(body)} bytes): {url}")

    mime = response.headers.get("content-type", "application/octet-stream").split(";")[0].strip()
    data_url = to_data_url(body, mime)

    cache_file.parent.mkdir(parents=True, exist_ok=True)
    cache_file.write_text(data_url, encoding="utf-8")
    logger.debug(f"Cached image {url} ({len(body)} bytes)")
    return data_url


async def prepare_image(
    reference: str,
    force_base64: Optional[bool] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    URL to send for an image reference.

    Data URIs pass through, local files are inlined, remote URLs are sent
    as-is unless base64 forcing is on, in which case they are downloaded.
    """
    force_base64 = settings.force_base64_images if force_base64 is None else force_base64

    if reference.startswith("data:"):
        return reference
    if is_http_url(reference):
        if force_base64:
            return await download_image(reference, client=client)
        return reference
    if is_file_path(reference):
        return read_local_image_as_data_url(reference)
    return reference
