"""Tests for image reference preparation."""

import base64

import httpx
import pytest

from offer_scout.ai.image_cache import (
    ImageDownloadError,
    cache_path_for,
    download_image,
    prepare_image,
)
from offer_scout.config import settings

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def image_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_remote_urls_pass_through_by_default():
    url = "https://images.sellpy.de/a.jpg"
    assert await prepare_image(url, force_base64=False) == url


@pytest.mark.asyncio
async def test_data_urls_pass_through():
    data_url = "data:image/png;base64,AAAA"
    assert await prepare_image(data_url, force_base64=True) == data_url


@pytest.mark.asyncio
async def test_local_file_is_inlined(tmp_path):
    path = tmp_path / "ref.png"
    path.write_bytes(PNG_BYTES)

    data_url = await prepare_image(str(path))

    assert data_url == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.mark.asyncio
async def test_forced_download_is_cached(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "image_cache_dir", str(tmp_path))
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png; charset=binary"})

    url = "https://images.sellpy.de/b.png"
    async with image_client(handler) as client:
        first = await prepare_image(url, force_base64=True, client=client)
        second = await prepare_image(url, force_base64=True, client=client)

    assert first == second
    assert first.startswith("data:image/png;base64,")
    assert len(requests) == 1
    assert requests[0].headers["Accept"].startswith("image/")
    assert "Referer" in requests[0].headers
    assert cache_path_for(url, str(tmp_path)).exists()


@pytest.mark.asyncio
async def test_download_errors(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing.jpg":
            return httpx.Response(404)
        return httpx.Response(200, content=b"x" * 64, headers={"content-type": "image/jpeg"})

    async with image_client(handler) as client:
        with pytest.raises(ImageDownloadError, match="HTTP 404"):
            await download_image("https://img.test/missing.jpg", cache_dir=str(tmp_path), client=client)
        with pytest.raises(ImageDownloadError, match="max size"):
            await download_image("https://img.test/huge.jpg", cache_dir=str(tmp_path), max_bytes=10, client=client)
