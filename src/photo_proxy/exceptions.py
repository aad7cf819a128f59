"""Domain level exceptions and helpers for the job pipeline."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "BadRequestError",
    "UnsupportedJobTypeError",
    "VendorError",
    "VendorTimeoutError",
    "AggregateVendorError",
    "MalformedVendorResponseError",
    "ArtifactError",
    "ArtifactFetchFailedError",
    "ArtifactPersistFailedError",
    "RepositoryError",
    "DuplicateJobIdError",
    "JobNotFoundError",
    "DatabaseOperationError",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for application specific errors."""

    error_code = "internal_error"

    def details(self) -> Any:
        return str(self) or None


class BadRequestError(AppError):
    """Raised when the caller envelope or adapter parameters are invalid."""

    error_code = "bad_request"


class UnsupportedJobTypeError(AppError):
    """Raised when no adapter is registered for a job type."""

    error_code = "unsupported_job_type"

    def __init__(self, job_type: str) -> None:
        super().__init__(f"Unknown or unsupported job type: {job_type}")
        self.job_type = job_type


class VendorError(AppError):
    """Vendor answered with a non-2xx status or could not be reached."""

    error_code = "vendor_error"

    def __init__(self, message: str, *, status: int = 502, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def details(self) -> Any:
        if self.body in (None, ""):
            return str(self)
        return self.body


class VendorTimeoutError(VendorError):
    """Vendor did not answer within the configured deadline."""

    error_code = "vendor_timeout"

    def __init__(self, message: str) -> None:
        super().__init__(message, status=504)


class AggregateVendorError(VendorError):
    """Every sub-call of a fan-out job failed."""

    def __init__(self, errors: list[Exception]) -> None:
        summary = "; ".join(str(error) for error in errors)
        super().__init__(
            f"All {len(errors)} vendor calls failed: {summary}",
            status=502,
            body=[_error_body(error) for error in errors],
        )
        self.errors = errors


class MalformedVendorResponseError(AppError):
    """Vendor returned 2xx but the body has no recognizable result."""

    error_code = "malformed_vendor_response"


class ArtifactError(AppError):
    """Base class for storage round-trip failures."""


class ArtifactFetchFailedError(ArtifactError):
    """Raised when a vendor-hosted result cannot be downloaded."""

    error_code = "artifact_fetch_failed"


class ArtifactPersistFailedError(ArtifactError):
    """Raised when durable storage rejects a write."""

    error_code = "artifact_persist_failed"


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class DuplicateJobIdError(RepositoryError):
    """Raised when a job id is already taken."""

    error_code = "duplicate_job_id"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' already exists")
        self.job_id = job_id


class JobNotFoundError(RepositoryError):
    """Raised when a job record could not be located."""

    error_code = "job_not_found"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' not found")
        self.job_id = job_id


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


def _error_body(error: Exception) -> Any:
    if isinstance(error, AppError):
        return {"error": error.error_code, "details": error.details()}
    return {"error": type(error).__name__, "details": str(error)}


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except sa_exc.DBAPIError as exc:
        raise DatabaseOperationError(context.format("database operation failed")) from exc
