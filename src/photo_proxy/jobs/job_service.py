"""Dispatcher coordinating adapters, the job store and notifications."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import structlog

from ..exceptions import (
    AppError,
    BadRequestError,
    MalformedVendorResponseError,
    VendorError,
    VendorTimeoutError,
)
from ..media.artifact_store import ArtifactMaterializer
from ..notifications.notifier import CompletionNotifier
from ..results.normalizer import normalize
from ..results.result_models import NormalizedResult
from ..vendors.vendor_base import AdapterContext, VendorAdapter
from ..vendors.vendor_registry import AdapterRegistry
from .job_models import Acknowledgement, DispatchMode, Job, JobRequest, JobState
from .job_repository import JobRepository

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CallbackOutcome:
    """Result of processing one vendor webhook delivery."""

    job: Job
    replay: bool = False


@dataclass(slots=True)
class JobService:
    """Route job requests to adapters in synchronous or asynchronous mode."""

    registry: AdapterRegistry
    repository: JobRepository
    materializer: ArtifactMaterializer
    notifier: CompletionNotifier
    callback_url: str
    vendor_timeout_seconds: float = 300.0
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    async def dispatch(
        self, request: JobRequest, mode: DispatchMode
    ) -> NormalizedResult | Acknowledgement:
        if mode is DispatchMode.SYNC:
            return await self.run_sync(request)
        return await self.start_async(request)

    async def run_sync(self, request: JobRequest) -> NormalizedResult:
        """Execute the job inline and return its normalized result."""
        adapter, parameters, caller_id = self._resolve(request)
        if adapter.async_only:
            raise BadRequestError(f"'{request.job_type}' can only be started as an asynchronous job")

        context = AdapterContext(caller_id=caller_id, materializer=self.materializer)
        logger.info("dispatch.sync.start", job_type=request.job_type, caller_id=caller_id)
        result = await self._execute(adapter, parameters, context)
        if _should_persist(adapter, parameters, result):
            result = await self.materializer.materialize_result(result, context.namespace)
        logger.info(
            "dispatch.sync.success",
            job_type=request.job_type,
            caller_id=caller_id,
            asset_count=len(result.images),
        )
        return result

    async def start_async(self, request: JobRequest) -> Acknowledgement:
        """Persist a pending job, hand it to the vendor and acknowledge."""
        adapter, parameters, caller_id = self._resolve(request)
        job = Job(
            id=request.job_id or uuid.uuid4().hex,
            job_type=str(request.job_type),
            parameters=parameters,
            caller_id=caller_id,
            notification_target=request.device_token or None,
        )
        self.repository.create(job)
        logger.info("dispatch.async.created", job_id=job.id, job_type=job.job_type, caller_id=caller_id)

        if adapter.supports_webhook:
            context = AdapterContext(
                caller_id=caller_id,
                materializer=self.materializer,
                webhook_url=self.webhook_url_for(job.id),
            )
            try:
                request_id = await self._with_timeout(adapter.submit(parameters, context))
            except Exception as exc:
                logger.warning("dispatch.async.submit_failed", job_id=job.id, error=_describe(exc))
                await self._fail(job.id, exc, notify=False)
                raise
            self.repository.set_vendor_request_id(job.id, request_id)
            logger.info("dispatch.async.submitted", job_id=job.id, vendor_request_id=request_id)
        else:
            context = AdapterContext(caller_id=caller_id, materializer=self.materializer)
            task = asyncio.create_task(self._run_in_background(job, adapter, context))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            logger.info("dispatch.async.background", job_id=job.id)

        return Acknowledgement(job_id=job.id)

    async def handle_callback(self, job_id: str | None, payload: Any) -> CallbackOutcome:
        """Apply a vendor webhook delivery to its job."""
        if not job_id:
            raise BadRequestError("Missing internal job ID from webhook")

        job = self.repository.get(job_id)
        if job.state.is_terminal:
            logger.info("jobs.callback.replay", job_id=job.id, state=job.state.value)
            return CallbackOutcome(job=job, replay=True)

        try:
            result = normalize(unwrap_webhook(payload))
        except (VendorError, MalformedVendorResponseError) as exc:
            logger.warning("jobs.callback.vendor_failure", job_id=job.id, error=_describe(exc))
            await self._fail(job.id, exc)
            return CallbackOutcome(job=self.repository.get(job.id))

        try:
            completed = await self._complete(job, result)
        except Exception as exc:
            logger.error("jobs.callback.failed", job_id=job.id, error=_describe(exc))
            await self._fail(job.id, exc)
            raise
        return completed

    def get_job(self, job_id: str) -> Job:
        return self.repository.get(job_id)

    def webhook_url_for(self, job_id: str) -> str:
        return f"{self.callback_url}?{urlencode({'job_id': job_id})}"

    async def drain(self) -> None:
        """Wait for outstanding background jobs."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _resolve(self, request: JobRequest) -> tuple[VendorAdapter, dict[str, Any], str]:
        if not request.job_type or request.parameters is None or not request.caller_id:
            raise BadRequestError("Missing required parameters: jobType, parameters, callerId")
        if not isinstance(request.parameters, dict):
            raise BadRequestError("'parameters' must be an object")
        adapter = self.registry.get(request.job_type)
        adapter.validate(request.parameters)
        return adapter, request.parameters, request.caller_id

    async def _with_timeout(self, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.vendor_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise VendorTimeoutError(
                f"Vendor did not answer within {self.vendor_timeout_seconds:g} seconds"
            ) from exc

    async def _execute(
        self, adapter: VendorAdapter, parameters: dict[str, Any], context: AdapterContext
    ) -> NormalizedResult:
        return await self._with_timeout(adapter.execute(parameters, context))

    async def _run_in_background(
        self, job: Job, adapter: VendorAdapter, context: AdapterContext
    ) -> None:
        try:
            result = await self._execute(adapter, job.parameters, context)
            await self._complete(job, result)
        except Exception as exc:
            logger.error("jobs.background.failed", job_id=job.id, error=_describe(exc))
            try:
                await self._fail(job.id, exc)
            except Exception:  # no caller left to report to
                logger.exception("jobs.background.transition_failed", job_id=job.id)

    async def _complete(self, job: Job, result: NormalizedResult) -> CallbackOutcome:
        namespace = f"processed/{job.caller_id}"
        stored = await self.materializer.materialize_result(result, namespace)
        applied = self.repository.transition(job.id, JobState.COMPLETED, result=stored)
        current = self.repository.get(job.id)
        if not applied:
            logger.info("jobs.transition.lost_race", job_id=job.id, state=current.state.value)
            return CallbackOutcome(job=current, replay=True)
        logger.info("jobs.completed", job_id=job.id, result_reference=current.result_reference)
        await self.notifier.notify(current)
        return CallbackOutcome(job=current)

    async def _fail(self, job_id: str, error: BaseException, *, notify: bool = True) -> None:
        applied = self.repository.transition(job_id, JobState.FAILED, error=_describe(error))
        if not applied:
            return
        logger.info("jobs.failed", job_id=job_id)
        if notify:
            await self.notifier.notify(self.repository.get(job_id))


def unwrap_webhook(payload: Any) -> Any:
    """Return the vendor result carried by a webhook body.

    fal.ai wraps results as ``{"status": "OK"|"ERROR", "payload": ..., "error": ...}``;
    any other body is taken to be the bare result.
    """
    if not isinstance(payload, Mapping):
        raise MalformedVendorResponseError("Webhook body is not a JSON object")
    status = payload.get("status")
    if status not in ("OK", "ERROR") or not {"payload", "error", "request_id"} & payload.keys():
        return payload
    if status == "ERROR":
        raise VendorError(
            f"Vendor reported failure: {payload.get('error') or 'unknown error'}",
            body=payload.get("payload") or payload.get("error"),
        )
    inner = payload.get("payload")
    if inner is None:
        reason = payload.get("payload_error") or "empty payload"
        raise MalformedVendorResponseError(f"Webhook carried no result: {reason}")
    return inner


def _should_persist(
    adapter: VendorAdapter, parameters: dict[str, Any], result: NormalizedResult
) -> bool:
    if any(asset.is_inline for asset in result.images):
        return True
    return bool(parameters.get("persist")) or adapter.persist_by_default


def _describe(error: BaseException) -> str:
    if isinstance(error, AppError):
        return f"{error.error_code}: {error}"
    return f"{type(error).__name__}: {error}"
