"""HTTP routes for job submission, vendor callbacks and polling."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..exceptions import (
    AppError,
    ArtifactFetchFailedError,
    BadRequestError,
    DuplicateJobIdError,
    JobNotFoundError,
    MalformedVendorResponseError,
    UnsupportedJobTypeError,
    VendorError,
    VendorTimeoutError,
)
from .job_models import DispatchMode
from .job_schemas import AcknowledgementSchema, ErrorSchema, JobSubmission
from .job_service import JobService

router = APIRouter(prefix="/api", tags=["jobs"])
logger = logging.getLogger(__name__)

CALLBACK_JOB_ID_FIELD = "_internal_job_id"
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorSchema} for code in (400, 404, 409, 500, 502, 504)
}


def get_job_service(request: Request) -> JobService:
    """Fetch job service from application state."""
    try:
        return request.app.state.job_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("JobService is not configured") from exc


def status_for(error: AppError) -> int:
    """HTTP status reported to the client for ``error``."""
    if isinstance(error, (BadRequestError, UnsupportedJobTypeError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, JobNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, DuplicateJobIdError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, VendorTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, VendorError):
        # Vendor rejections of the request itself are passed through.
        if 400 <= error.status < 500:
            return error.status
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, (MalformedVendorResponseError, ArtifactFetchFailedError)):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error(status_code: int, error: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def error_response(exc: AppError) -> JSONResponse:
    return _error(status_for(exc), exc.error_code, exc.details())


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed envelopes as ``bad_request`` instead of 422."""
    details = [
        {"loc": [str(part) for part in item.get("loc", ())], "msg": item.get("msg")}
        for item in exc.errors()
    ]
    return _error(status.HTTP_400_BAD_REQUEST, BadRequestError.error_code, details)


@router.post("/process", responses=ERROR_RESPONSES)
async def process_job(
    payload: JobSubmission,
    service: JobService = Depends(get_job_service),
) -> JSONResponse:
    """Run a job synchronously and return its normalized result."""
    try:
        result = await service.dispatch(payload.to_request(), DispatchMode.SYNC)
    except AppError as exc:
        logger.warning(
            "api.process.failed",
            extra={"job_type": payload.job_type, "caller_id": payload.caller_id, "error": str(exc)},
        )
        return error_response(exc)
    except Exception:
        logger.exception("api.process.unexpected_error", extra={"job_type": payload.job_type})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error")
    return JSONResponse(status_code=status.HTTP_200_OK, content=result.to_dict())


@router.post(
    "/start-job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=AcknowledgementSchema,
    responses=ERROR_RESPONSES,
)
async def start_job(
    payload: JobSubmission,
    service: JobService = Depends(get_job_service),
) -> JSONResponse:
    """Create a pending job and acknowledge it immediately."""
    try:
        ack = await service.dispatch(payload.to_request(), DispatchMode.ASYNC)
    except AppError as exc:
        logger.warning(
            "api.start_job.failed",
            extra={"job_type": payload.job_type, "job_id": payload.job_id, "error": str(exc)},
        )
        return error_response(exc)
    except Exception:
        logger.exception("api.start_job.unexpected_error", extra={"job_id": payload.job_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error")
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=ack.to_dict())


@router.post("/complete-job")
async def complete_job(
    request: Request,
    job_id: str | None = Query(default=None),
    service: JobService = Depends(get_job_service),
) -> JSONResponse:
    """Vendor webhook; the job id travels in the query string or the body."""
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not job_id and isinstance(payload, dict) and payload.get(CALLBACK_JOB_ID_FIELD):
        job_id = str(payload[CALLBACK_JOB_ID_FIELD])

    try:
        outcome = await service.handle_callback(job_id, payload)
    except (BadRequestError, JobNotFoundError) as exc:
        logger.warning("api.complete_job.rejected", extra={"job_id": job_id, "error": str(exc)})
        return error_response(exc)
    except Exception as exc:
        logger.exception("api.complete_job.failed", extra={"job_id": job_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", str(exc) or None)

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "replay" if outcome.replay else "processed",
            "jobId": outcome.job.id,
            "state": outcome.job.state.value,
        },
    )


@router.get("/jobs/{job_id}", responses={404: {"model": ErrorSchema}})
def get_job(job_id: str, service: JobService = Depends(get_job_service)) -> JSONResponse:
    try:
        job = service.get_job(job_id)
    except JobNotFoundError as exc:
        return error_response(exc)
    return JSONResponse(status_code=status.HTTP_200_OK, content=job.to_dict())
