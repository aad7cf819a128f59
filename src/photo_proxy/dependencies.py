"""Dependency wiring helpers."""

import logging

from fastapi import FastAPI

from .config import AppConfig
from .jobs.job_api import router as jobs_router
from .jobs.job_repository import JobRepository
from .jobs.job_service import JobService
from .media.artifact_router import build_public_artifact_router
from .media.artifact_store import ArtifactMaterializer
from .media.object_storage import LocalObjectStorage, ObjectStorage, create_object_storage
from .notifications.notifier import CompletionNotifier, NullPushSender, PushSender
from .vendors.vendor_registry import AdapterRegistry, build_default_registry

logger = logging.getLogger(__name__)


def build_push_sender(config: AppConfig) -> PushSender:
    if not config.firebase_service_account_json:
        logger.info("notify.push.disabled")
        return NullPushSender()
    from .notifications.fcm import FcmPushSender

    return FcmPushSender.from_service_account_json(config.firebase_service_account_json)


def include_routers(
    app: FastAPI,
    config: AppConfig,
    *,
    registry: AdapterRegistry | None = None,
    storage: ObjectStorage | None = None,
    push_sender: PushSender | None = None,
) -> None:
    """Mount module routers and attach services."""
    storage = storage or create_object_storage(config.storage)
    materializer = ArtifactMaterializer(storage=storage, timeout_seconds=config.vendor_timeout_seconds)
    job_repo = JobRepository(config.session_factory)
    notifier = CompletionNotifier(sender=push_sender or build_push_sender(config))

    job_service = JobService(
        registry=registry or build_default_registry(config),
        repository=job_repo,
        materializer=materializer,
        notifier=notifier,
        callback_url=config.callback_url,
        vendor_timeout_seconds=config.vendor_timeout_seconds,
    )

    app.state.config = config
    app.state.storage = storage
    app.state.job_repo = job_repo
    app.state.job_service = job_service

    app.include_router(jobs_router)
    if isinstance(storage, LocalObjectStorage):
        app.include_router(build_public_artifact_router(storage))
