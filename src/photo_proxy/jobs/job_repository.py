"""Persistence layer for job records."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.db_models import JobModel
from ..exceptions import DuplicateJobIdError, JobNotFoundError, handle_sqlalchemy_errors
from ..results.result_models import NormalizedResult
from .job_models import Job, JobState, utcnow


class JobRepository:
    """Manage job records and their state transitions."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(self, job: Job) -> Job:
        with handle_sqlalchemy_errors(entity="job"), self._session_factory() as session:
            if session.get(JobModel, job.id) is not None:
                raise DuplicateJobIdError(job.id)
            session.add(
                JobModel(
                    id=job.id,
                    state=JobState.PENDING.value,
                    job_type=job.job_type,
                    parameters_json=json.dumps(job.parameters),
                    caller_id=job.caller_id,
                    notification_target=job.notification_target,
                    created_at=job.created_at,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateJobIdError(job.id) from exc
        return job

    def get(self, job_id: str) -> Job:
        with handle_sqlalchemy_errors(entity="job"), self._session_factory() as session:
            model = session.get(JobModel, job_id)
            if model is None:
                raise JobNotFoundError(job_id)
            return _to_domain(model)

    def set_vendor_request_id(self, job_id: str, request_id: str) -> None:
        with handle_sqlalchemy_errors(entity="job"), self._session_factory() as session:
            model = session.get(JobModel, job_id)
            if model is None:
                raise JobNotFoundError(job_id)
            model.vendor_request_id = request_id
            session.commit()

    def transition(
        self,
        job_id: str,
        new_state: JobState,
        *,
        result: NormalizedResult | None = None,
        error: str | None = None,
        completed_at: datetime | None = None,
    ) -> bool:
        """Move a pending job to a terminal state.

        The update is conditional on ``state = 'pending'`` so concurrent
        callbacks for the same id cannot both win. Returns ``False`` when the
        job was already terminal (nothing is overwritten).
        """
        if not new_state.is_terminal:
            raise ValueError("jobs can only transition to a terminal state")

        values: dict[str, object] = {
            "state": new_state.value,
            "completed_at": completed_at or utcnow(),
        }
        if new_state is JobState.COMPLETED:
            values["result_reference"] = result.primary_url if result else None
            values["result_json"] = json.dumps(result.to_dict()) if result else None
            values["error_detail"] = None
        else:
            values["error_detail"] = error or "unknown error"

        statement = (
            update(JobModel)
            .where(JobModel.id == job_id, JobModel.state == JobState.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with handle_sqlalchemy_errors(entity="job"), self._session_factory() as session:
            outcome = session.execute(statement)
            session.commit()
            if outcome.rowcount:
                return True
            if session.get(JobModel, job_id) is None:
                raise JobNotFoundError(job_id)
            return False


def _to_domain(model: JobModel) -> Job:
    result = NormalizedResult.from_dict(json.loads(model.result_json)) if model.result_json else None
    return Job(
        id=model.id,
        job_type=model.job_type,
        parameters=json.loads(model.parameters_json or "{}"),
        caller_id=model.caller_id,
        state=JobState(model.state),
        notification_target=model.notification_target,
        vendor_request_id=model.vendor_request_id,
        created_at=model.created_at,
        completed_at=model.completed_at,
        result_reference=model.result_reference,
        result=result,
        error_detail=model.error_detail,
    )
