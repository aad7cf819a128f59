"""Durable object storage backends used by the artifact materializer."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote, urljoin

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StorageSettings

logger = logging.getLogger(__name__)

PUBLIC_ARTIFACT_PREFIX = "public/artifacts"


class StorageWriteError(Exception):
    """Raised by backends when bytes could not be stored or addressed."""


class ObjectStorage(ABC):
    """Store bytes under a key and hand out long-lived retrieval URLs."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Write ``data`` under ``key``."""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Return a long-lived URL for ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""


def build_public_artifact_url(base_url: str, key: str) -> str:
    base = base_url.rstrip("/") + "/"
    return urljoin(base, f"{PUBLIC_ARTIFACT_PREFIX}/{quote(key)}")


@dataclass(slots=True)
class LocalObjectStorage(ObjectStorage):
    """Keep artifacts on disk under ``root`` and serve them over HTTP."""

    root: Path
    public_base_url: str

    def path_for(self, key: str) -> Path:
        candidate = (self.root / key).resolve()
        if self.root.resolve() not in candidate.parents:
            raise StorageWriteError(f"Key '{key}' escapes the storage root")
        return candidate

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageWriteError(str(exc)) from exc

    def url_for(self, key: str) -> str:
        return build_public_artifact_url(self.public_base_url, key)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


@dataclass(slots=True)
class S3ObjectStorage(ObjectStorage):
    """S3-compatible bucket (AWS S3, Cloudflare R2) with presigned reads."""

    bucket: str
    client: Any
    url_ttl_seconds: int
    public_base_url: str | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageWriteError(str(exc)) from exc

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return self.public_base_url.rstrip("/") + "/" + quote(key)
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageWriteError(str(exc)) from exc

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)


def _create_s3_client(settings: StorageSettings) -> Any:
    return boto3.client(
        "s3",
        region_name=settings.region or "auto",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def create_object_storage(settings: StorageSettings) -> ObjectStorage:
    """Instantiate the storage backend selected by ``STORAGE_BACKEND``."""
    if settings.backend == "local":
        root = settings.media_root / "artifacts"
        root.mkdir(parents=True, exist_ok=True)
        return LocalObjectStorage(root=root, public_base_url=settings.public_base_url)
    if settings.backend == "s3":
        if not settings.bucket:
            raise ValueError("S3_BUCKET is required for the s3 storage backend")
        return S3ObjectStorage(
            bucket=settings.bucket,
            client=_create_s3_client(settings),
            url_ttl_seconds=settings.url_ttl_seconds,
            public_base_url=settings.bucket_public_base_url,
        )
    raise ValueError(f"Unsupported storage backend '{settings.backend}'")
