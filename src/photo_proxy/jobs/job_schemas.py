"""Pydantic schemas for job requests and responses."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .job_models import JobRequest


class JobSubmission(BaseModel):
    """Client envelope; legacy ``apiParams``/``userId`` names are accepted."""

    model_config = ConfigDict(extra="ignore")

    job_type: str | None = Field(default=None, validation_alias=AliasChoices("jobType", "job_type"))
    parameters: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("parameters", "apiParams")
    )
    caller_id: str | None = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("callerId", "userId", "caller_id"),
    )
    job_id: str | None = Field(
        default=None, max_length=64, validation_alias=AliasChoices("jobId", "job_id")
    )
    device_token: str | None = Field(
        default=None, validation_alias=AliasChoices("deviceToken", "device_token")
    )

    def to_request(self) -> JobRequest:
        return JobRequest(
            job_type=self.job_type,
            parameters=self.parameters,
            caller_id=self.caller_id,
            job_id=self.job_id,
            device_token=self.device_token,
        )


class AcknowledgementSchema(BaseModel):
    message: str
    jobId: str


class ErrorSchema(BaseModel):
    error: str
    details: Any | None = None
