from __future__ import annotations

import httpx
import pytest

from photo_proxy.exceptions import ArtifactFetchFailedError, MalformedVendorResponseError, VendorError
from photo_proxy.vendors.gemini import DescribeMaskAdapter
from photo_proxy.vendors.vendor_base import AdapterContext
from tests.mocks.vendors import DummyAsyncClient, DummyResponse, install_client, install_transport

PARAMS = {"image_url": "https://x/photo.jpg", "mask_url": "https://x/mask.png"}


@pytest.fixture
def context(materializer) -> AdapterContext:
    return AdapterContext(caller_id="u1", materializer=materializer)


def _images() -> list[DummyResponse]:
    return [DummyResponse(200, content=b"photo"), DummyResponse(200, content=b"mask")]


@pytest.mark.asyncio
async def test_describe_mask(monkeypatch, context) -> None:
    answer = {"candidates": [{"content": {"parts": [{"text": '"a brown dog"\n'}]}}]}
    client = install_client(monkeypatch, DummyAsyncClient(_images() + [DummyResponse(200, answer)]))

    result = await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)

    assert result.description == "a brown dog"
    assert result.images == []
    request = client.calls[2]
    assert request["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert request["headers"]["x-goog-api-key"] == "g-key"
    parts = request["json"]["contents"][0]["parts"]
    assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "cGhvdG8="}}
    assert parts[2]["inline_data"]["mime_type"] == "image/png"


@pytest.mark.asyncio
async def test_image_fetch_failure(monkeypatch, context) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(404), DummyResponse(200, content=b"mask")]))

    with pytest.raises(ArtifactFetchFailedError):
        await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)


@pytest.mark.asyncio
async def test_vendor_error_message(monkeypatch, context) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient(_images() + [DummyResponse(429, {"error": {"message": "quota exceeded"}})]),
    )

    with pytest.raises(VendorError) as excinfo:
        await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)

    assert excinfo.value.status == 429
    assert excinfo.value.body == "quota exceeded"


@pytest.mark.asyncio
async def test_empty_candidates(monkeypatch, context) -> None:
    install_client(monkeypatch, DummyAsyncClient(_images() + [DummyResponse(200, {"candidates": []})]))

    with pytest.raises(MalformedVendorResponseError):
        await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)


@pytest.mark.asyncio
async def test_non_json_answer_is_malformed(monkeypatch, context) -> None:
    install_client(monkeypatch, DummyAsyncClient(_images() + [DummyResponse(200, text="<html>oops</html>")]))

    with pytest.raises(MalformedVendorResponseError):
        await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)


@pytest.mark.asyncio
async def test_image_fetch_follows_redirects(monkeypatch, context) -> None:
    answer = {"candidates": [{"content": {"parts": [{"text": "the blue car"}]}}]}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "x" and request.url.path == "/photo.jpg":
            return httpx.Response(301, headers={"Location": "https://cdn.x/photo.jpg"})
        if request.method == "POST":
            return httpx.Response(200, json=answer)
        return httpx.Response(200, content=b"bytes")

    seen = install_transport(monkeypatch, handler)

    result = await DescribeMaskAdapter(api_key="g-key").execute(PARAMS, context)

    assert result.description == "the blue car"
    assert "https://cdn.x/photo.jpg" in [str(request.url) for request in seen]
