"""Re-host vendor results in durable storage."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import uuid
from dataclasses import dataclass, field

import httpx

from ..exceptions import ArtifactFetchFailedError, ArtifactPersistFailedError
from ..results.normalizer import is_data_uri, parse_data_uri
from ..results.result_models import NormalizedResult, ResultAsset
from .object_storage import ObjectStorage, StorageWriteError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "application/octet-stream": "bin",
}


@dataclass(slots=True)
class StoredArtifact:
    """Asset persisted in our own storage."""

    bucket_key: str
    permanent_url: str
    content_type: str


@dataclass(slots=True)
class ArtifactMaterializer:
    """Download (or decode) results and store them under caller namespaces."""

    storage: ObjectStorage
    timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    async def persist(
        self,
        source: str | bytes,
        namespace: str,
        content_type: str | None = None,
    ) -> StoredArtifact:
        """Store ``source`` (URL, data URI or raw bytes) and return its artifact."""
        if isinstance(source, bytes):
            payload, detected = source, None
        elif is_data_uri(source):
            try:
                payload, detected = parse_data_uri(source)
            except ValueError as exc:
                raise ArtifactFetchFailedError(f"Invalid data URI: {exc}") from exc
        else:
            payload, detected = await self._download(source)

        resolved_type = content_type or detected or DEFAULT_CONTENT_TYPE
        key = f"{namespace.strip('/')}/{uuid.uuid4().hex}.{_extension_for(resolved_type)}"
        try:
            # Backends are blocking clients.
            await asyncio.to_thread(self.storage.put, key, payload, resolved_type)
            permanent_url = await asyncio.to_thread(self.storage.url_for, key)
        except StorageWriteError as exc:
            self.log.error(
                "artifact.persist.failed",
                extra={"bucket_key": key, "error": str(exc)},
            )
            raise ArtifactPersistFailedError(f"Could not store artifact '{key}': {exc}") from exc

        self.log.info(
            "artifact.persist.stored",
            extra={"bucket_key": key, "size_bytes": len(payload), "content_type": resolved_type},
        )
        return StoredArtifact(bucket_key=key, permanent_url=permanent_url, content_type=resolved_type)

    async def persist_asset(self, asset: ResultAsset, namespace: str) -> StoredArtifact:
        source: str | bytes = asset.data if asset.data is not None else asset.url
        return await self.persist(source, namespace, asset.content_type)

    async def materialize_result(
        self, result: NormalizedResult, namespace: str
    ) -> NormalizedResult:
        """Return a copy of ``result`` whose assets point at permanent URLs."""
        images: list[ResultAsset] = []
        for asset in result.images:
            artifact = await self.persist_asset(asset, namespace)
            images.append(
                ResultAsset(
                    url=artifact.permanent_url,
                    width=asset.width,
                    height=asset.height,
                    content_type=artifact.content_type,
                )
            )
        return NormalizedResult(
            images=images,
            timings=result.timings,
            description=result.description,
            seed=result.seed,
        )

    async def delete(self, artifact: StoredArtifact) -> None:
        """Best-effort removal of a temporary artifact."""
        try:
            await asyncio.to_thread(self.storage.delete, artifact.bucket_key)
        except Exception:  # best-effort
            self.log.warning(
                "artifact.delete.failed",
                extra={"bucket_key": artifact.bucket_key},
                exc_info=True,
            )
        else:
            self.log.info("artifact.delete.done", extra={"bucket_key": artifact.bucket_key})

    async def _download(self, url: str) -> tuple[bytes, str | None]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ArtifactFetchFailedError(f"Failed to download result: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise ArtifactFetchFailedError(
                f"Failed to download result: status {response.status_code}"
            )
        header = response.headers.get("Content-Type")
        content_type = header.split(";")[0].strip() if header else None
        return response.content, content_type


def _extension_for(content_type: str) -> str:
    if content_type in _EXTENSIONS:
        return _EXTENSIONS[content_type]
    guessed = mimetypes.guess_extension(content_type)
    return guessed.lstrip(".") if guessed else "bin"
