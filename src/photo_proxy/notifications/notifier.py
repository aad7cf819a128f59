"""Push notifications sent when asynchronous jobs finish."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..jobs.job_models import Job, JobState

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PushMessage:
    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


class PushSender(ABC):
    """Deliver a message to a device token."""

    @abstractmethod
    async def send(self, message: PushMessage) -> None:
        """Send ``message``; raise on delivery failure."""


class NullPushSender(PushSender):
    """Used when no push credentials are configured."""

    async def send(self, message: PushMessage) -> None:
        logger.info("notify.push.skipped", extra={"job_id": message.data.get("jobId")})


@dataclass(slots=True)
class CompletionNotifier:
    sender: PushSender
    log: logging.Logger = field(default_factory=lambda: logger)

    async def notify(self, job: Job) -> bool:
        """Push the outcome of ``job``; returns ``True`` when a message was sent."""
        if not job.notification_target:
            return False

        message = build_message(job)
        try:
            await self.sender.send(message)
        except Exception:  # delivery is best-effort
            self.log.warning(
                "notify.push.failed",
                extra={"job_id": job.id, "job_state": job.state.value},
                exc_info=True,
            )
            return False
        self.log.info("notify.push.sent", extra={"job_id": job.id, "job_state": job.state.value})
        return True


def build_message(job: Job) -> PushMessage:
    data = {"jobId": job.id}
    if job.state is JobState.COMPLETED:
        data["finalImageUrl"] = job.result_reference or ""
        return PushMessage(
            token=job.notification_target or "",
            title="Your Photo is Ready!",
            body="The AI processing for your image has finished.",
            data=data,
        )
    data["error"] = job.error_detail or "unknown error"
    return PushMessage(
        token=job.notification_target or "",
        title="Processing Failed",
        body="We couldn't finish processing your image.",
        data=data,
    )
