from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="photo-proxy-tests-"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

from photo_proxy.config import AppConfig, StorageSettings, VendorCredentials  # noqa: E402
from photo_proxy.db.db_init import init_db  # noqa: E402
from photo_proxy.jobs.job_repository import JobRepository  # noqa: E402
from photo_proxy.media.artifact_store import ArtifactMaterializer  # noqa: E402
from tests.mocks.vendors import MemoryObjectStorage, RecordingPushSender  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def job_repo(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def storage() -> MemoryObjectStorage:
    return MemoryObjectStorage()


@pytest.fixture
def materializer(storage) -> ArtifactMaterializer:
    return ArtifactMaterializer(storage=storage)


@pytest.fixture
def push_sender() -> RecordingPushSender:
    return RecordingPushSender()


@pytest.fixture
def app_config(session_factory, tmp_path: Path) -> AppConfig:
    return AppConfig(
        database_url="sqlite://",
        engine=session_factory.kw["bind"],
        session_factory=session_factory,
        vendors=VendorCredentials(fal_key="fal-key", topaz_api_key="topaz-key", gemini_api_key="gemini-key"),
        storage=StorageSettings(
            backend="local",
            media_root=tmp_path / "media",
            public_base_url="http://testserver",
        ),
        webhook_base_url="https://proxy.test",
        vendor_timeout_seconds=5.0,
    )
