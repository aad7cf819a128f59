from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from photo_proxy.exceptions import ArtifactFetchFailedError, ArtifactPersistFailedError
from photo_proxy.media.artifact_store import ArtifactMaterializer, StoredArtifact
from photo_proxy.results.result_models import NormalizedResult, ResultAsset
from tests.mocks.vendors import (
    DummyAsyncClient,
    DummyResponse,
    MemoryObjectStorage,
    install_client,
    install_transport,
)


@pytest.mark.asyncio
async def test_persist_data_uri_skips_network(monkeypatch, materializer, storage) -> None:
    client = install_client(monkeypatch, DummyAsyncClient([]))

    artifact = await materializer.persist("data:image/png;base64,QUJD", "processed/u1")

    assert client.calls == []
    assert artifact.bucket_key.startswith("processed/u1/")
    assert artifact.bucket_key.endswith(".png")
    assert artifact.permanent_url == f"https://cdn.test/{artifact.bucket_key}"
    assert storage.objects[artifact.bucket_key] == (b"ABC", "image/png")


@pytest.mark.asyncio
async def test_persist_url_downloads_bytes(monkeypatch, materializer, storage) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient(
            [DummyResponse(200, content=b"jpeg-bytes", headers={"Content-Type": "image/jpeg; charset=binary"})]
        ),
    )

    artifact = await materializer.persist("https://vendor.test/out.jpg", "processed/u1")

    assert client.calls[0]["url"] == "https://vendor.test/out.jpg"
    assert artifact.content_type == "image/jpeg"
    assert artifact.bucket_key.endswith(".jpg")
    assert storage.objects[artifact.bucket_key][0] == b"jpeg-bytes"


@pytest.mark.asyncio
async def test_keys_are_unique_per_call(materializer) -> None:
    first = await materializer.persist(b"one", "processed/u1", "image/png")
    second = await materializer.persist(b"two", "processed/u1", "image/png")

    assert first.bucket_key != second.bucket_key


@pytest.mark.asyncio
async def test_download_failure_status(monkeypatch, materializer) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(404)]))

    with pytest.raises(ArtifactFetchFailedError):
        await materializer.persist("https://vendor.test/expired.png", "processed/u1")


@pytest.mark.asyncio
async def test_download_network_error(monkeypatch, materializer) -> None:
    install_client(monkeypatch, DummyAsyncClient([httpx.ConnectError("boom")]))

    with pytest.raises(ArtifactFetchFailedError):
        await materializer.persist("https://vendor.test/out.png", "processed/u1")


@pytest.mark.asyncio
async def test_storage_write_failure() -> None:
    materializer = ArtifactMaterializer(storage=MemoryObjectStorage(fail_writes=True))

    with pytest.raises(ArtifactPersistFailedError):
        await materializer.persist(b"bytes", "processed/u1", "image/png")


@pytest.mark.asyncio
async def test_materialize_result_rewrites_urls(materializer, storage) -> None:
    result = NormalizedResult(
        images=[ResultAsset(url="data:image/png;base64,QUJD", width=1, height=1, data=b"ABC", content_type="image/png")],
        timings={"totalTime": 2},
    )

    stored = await materializer.materialize_result(result, "processed/u9")

    assert stored.primary_url.startswith("https://cdn.test/processed/u9/")
    assert stored.images[0].width == 1
    assert stored.images[0].data is None
    assert stored.timings == {"totalTime": 2}
    assert len(storage.objects) == 1


@pytest.mark.asyncio
async def test_delete_is_best_effort(materializer, storage) -> None:
    class BrokenStorage(MemoryObjectStorage):
        def delete(self, key: str) -> None:
            raise RuntimeError("gone")

    await ArtifactMaterializer(storage=BrokenStorage()).delete(
        StoredArtifact(bucket_key="tmp/a.png", permanent_url="https://cdn.test/tmp/a.png", content_type="image/png")
    )
    await materializer.delete(
        StoredArtifact(bucket_key="tmp/b.png", permanent_url="https://cdn.test/tmp/b.png", content_type="image/png")
    )

    assert storage.deleted == ["tmp/b.png"]


@pytest.mark.asyncio
async def test_download_follows_redirects(monkeypatch, materializer, storage) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/short":
            return httpx.Response(302, headers={"Location": "https://v3.fal.media/files/out.png"})
        return httpx.Response(200, content=b"png-bytes", headers={"Content-Type": "image/png"})

    seen = install_transport(monkeypatch, handler)

    artifact = await materializer.persist("https://fal.media/short", "processed/u1")

    assert [str(request.url) for request in seen] == [
        "https://fal.media/short",
        "https://v3.fal.media/files/out.png",
    ]
    assert storage.objects[artifact.bucket_key] == (b"png-bytes", "image/png")


@pytest.mark.asyncio
async def test_slow_storage_does_not_block_the_event_loop() -> None:
    class SlowStorage(MemoryObjectStorage):
        def put(self, key: str, data: bytes, content_type: str) -> None:
            time.sleep(0.5)
            MemoryObjectStorage.put(self, key, data, content_type)

    materializer = ArtifactMaterializer(storage=SlowStorage())
    ticks = 0

    async def heartbeat() -> None:
        nonlocal ticks
        while True:
            await asyncio.sleep(0.01)
            ticks += 1

    beat = asyncio.create_task(heartbeat())
    started = time.monotonic()
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(materializer.persist(b"x", "processed/u1", "image/png"), timeout=0.1)
    elapsed = time.monotonic() - started
    beat.cancel()

    assert elapsed < 0.4
    assert ticks >= 3
