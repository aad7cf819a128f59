"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

# SigV4 presigned URLs cannot outlive seven days.
MAX_PRESIGN_SECONDS = 7 * 24 * 60 * 60


@dataclass(slots=True)
class VendorCredentials:
    fal_key: str | None
    topaz_api_key: str | None
    gemini_api_key: str | None


@dataclass(slots=True)
class StorageSettings:
    backend: str
    media_root: Path
    public_base_url: str
    bucket: str | None = None
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str | None = None
    bucket_public_base_url: str | None = None
    url_ttl_seconds: int = MAX_PRESIGN_SECONDS


@dataclass(slots=True)
class AppConfig:
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    vendors: VendorCredentials
    storage: StorageSettings
    webhook_base_url: str
    vendor_timeout_seconds: float
    firebase_service_account_json: str | None = None

    @property
    def callback_url(self) -> str:
        return self.webhook_base_url.rstrip("/") + "/api/complete-job"


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def load_storage_settings() -> StorageSettings:
    public_base_url = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
    ttl = int(os.getenv("STORAGE_URL_TTL_SECONDS", MAX_PRESIGN_SECONDS))
    return StorageSettings(
        backend=os.getenv("STORAGE_BACKEND", "local").lower(),
        media_root=Path(os.getenv("MEDIA_ROOT", "media")),
        public_base_url=public_base_url,
        bucket=_optional("S3_BUCKET"),
        endpoint_url=_optional("S3_ENDPOINT_URL"),
        access_key=_optional("S3_ACCESS_KEY"),
        secret_key=_optional("S3_SECRET_KEY"),
        region=_optional("S3_REGION"),
        bucket_public_base_url=_optional("S3_PUBLIC_BASE_URL"),
        url_ttl_seconds=max(1, min(ttl, MAX_PRESIGN_SECONDS)),
    )


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    database_url = os.getenv("DATABASE_URL", "sqlite:///photo_proxy.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    vendors = VendorCredentials(
        fal_key=_optional("FAL_KEY") or _optional("FAL_API_KEY"),
        topaz_api_key=_optional("TOPAZ_API_KEY"),
        gemini_api_key=_optional("GEMINI_API_KEY"),
    )
    storage = load_storage_settings()
    webhook_base_url = os.getenv("WEBHOOK_BASE_URL", storage.public_base_url)
    vendor_timeout_seconds = float(os.getenv("VENDOR_TIMEOUT_SECONDS", 300))

    init_db(engine)

    return AppConfig(
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        vendors=vendors,
        storage=storage,
        webhook_base_url=webhook_base_url,
        vendor_timeout_seconds=vendor_timeout_seconds,
        firebase_service_account_json=_optional("FIREBASE_SERVICE_ACCOUNT_JSON"),
    )
