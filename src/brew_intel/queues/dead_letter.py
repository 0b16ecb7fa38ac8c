"""Dead-letter recording of jobs that failed for good."""

import logging
from typing import Optional

from brew_intel.database.failed_jobs import FailedJobData, FailedJobStore
from brew_intel.queues.jobs import FailureEvent
from brew_intel.queues.worker import Stage

logger = logging.getLogger(__name__)


class DeadLetterRecorder:
    """Listens to every stage's failure events and persists final ones.

    Non-final failures are only logged; the job will be attempted again.
    Content items are never touched here.
    """

    def __init__(self, store: Optional[FailedJobStore] = None):
        self.store = store or FailedJobStore()

    def attach(self, *stages: Stage) -> None:
        for stage in stages:
            stage.on_failure(self)

    def __call__(self, event: FailureEvent) -> None:
        job = event.job

        if not event.final:
            logger.warning(
                f"Job failed (attempt {job.attempts_made}/{job.max_attempts}): "
                f"{job.name} ({job.id}) - will retry"
            )
            return

        logger.error(
            f"Job permanently failed after {job.attempts_made} attempts: "
            f"{job.queue_name}/{job.name} ({job.id}): {event.error}"
        )

        self.store.record(
            FailedJobData(
                queue_name=job.queue_name,
                job_name=job.name,
                job_id=job.id,
                data=_snapshot(job.data),
                error=str(event.error) or type(event.error).__name__,
                stack_trace=event.stack_trace,
                attempts_made=job.attempts_made,
            )
        )


def _snapshot(data: dict) -> dict:
    """JSON-safe copy of a job payload; binary attachment bodies are summarised."""

    def convert(value):
        if isinstance(value, dict):
            return {key: convert(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(item) for item in value]
        if isinstance(value, (bytes, bytearray)):
            return f"<{len(value)} bytes>"
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    return convert(data)
