from __future__ import annotations

import httpx
import pytest

from photo_proxy.exceptions import MalformedVendorResponseError, VendorError
from photo_proxy.vendors.fal_client import FalClient
from tests.mocks.vendors import DummyAsyncClient, DummyResponse, install_client


@pytest.mark.asyncio
async def test_run_posts_json_with_key(monkeypatch) -> None:
    client = install_client(
        monkeypatch, DummyAsyncClient([DummyResponse(200, {"image": {"url": "https://fal/a.png"}})])
    )

    data = await FalClient(api_key="secret").run("fal-ai/nano-banana/edit", {"prompt": "p"})

    assert data == {"image": {"url": "https://fal/a.png"}}
    call = client.calls[0]
    assert call["url"] == "https://fal.run/fal-ai/nano-banana/edit"
    assert call["headers"]["Authorization"] == "Key secret"
    assert call["json"] == {"prompt": "p"}
    assert call["params"] is None


@pytest.mark.asyncio
async def test_missing_key_fails_before_any_call(monkeypatch) -> None:
    client = install_client(monkeypatch, DummyAsyncClient([]))

    with pytest.raises(VendorError) as excinfo:
        await FalClient(api_key=None).run("fal-ai/x", {})

    assert excinfo.value.status == 500
    assert client.calls == []


@pytest.mark.asyncio
async def test_non_2xx_keeps_status_and_body(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(422, text='{"detail":"bad mask"}')]))

    with pytest.raises(VendorError) as excinfo:
        await FalClient(api_key="k").run("fal-ai/flux-pro/v1/fill", {})

    assert excinfo.value.status == 422
    assert excinfo.value.body == '{"detail":"bad mask"}'


@pytest.mark.asyncio
async def test_transport_errors(monkeypatch) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient([httpx.ReadTimeout("slow"), httpx.ConnectError("refused")]),
    )
    client = FalClient(api_key="k")

    with pytest.raises(VendorError) as timeout:
        await client.run("fal-ai/x", {})
    with pytest.raises(VendorError) as refused:
        await client.run("fal-ai/x", {})

    assert timeout.value.status == 504
    assert refused.value.status == 502


@pytest.mark.asyncio
async def test_non_json_body_is_malformed(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(200, text="<html>")]))

    with pytest.raises(MalformedVendorResponseError):
        await FalClient(api_key="k").run("fal-ai/x", {})


@pytest.mark.asyncio
async def test_enqueue_passes_webhook_and_returns_request_id(monkeypatch) -> None:
    client = install_client(monkeypatch, DummyAsyncClient([DummyResponse(200, {"request_id": "req-1"})]))

    request_id = await FalClient(api_key="k").enqueue(
        "fal-ai/topaz/upscale/image", {"image_url": "u"}, "https://proxy.test/api/complete-job?job_id=j1"
    )

    assert request_id == "req-1"
    assert client.calls[0]["url"] == "https://queue.fal.run/fal-ai/topaz/upscale/image"
    assert client.calls[0]["params"] == {"fal_webhook": "https://proxy.test/api/complete-job?job_id=j1"}


@pytest.mark.asyncio
async def test_enqueue_without_request_id(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(200, {"status": "IN_QUEUE"})]))

    with pytest.raises(MalformedVendorResponseError):
        await FalClient(api_key="k").enqueue("fal-ai/x", {}, "https://proxy.test/cb")
