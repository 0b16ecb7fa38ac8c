"""Storage for jobs that exhausted their retries."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func

from brew_intel.database.connection import get_session
from brew_intel.database.models import FailedJob

logger = logging.getLogger(__name__)


@dataclass
class FailedJobData:
    """Snapshot of a terminally failed job."""

    queue_name: str
    job_name: str
    data: dict[str, Any]
    error: str
    attempts_made: int
    stack_trace: Optional[str] = None
    job_id: Optional[str] = None


class FailedJobStore:
    """CRUD over the failed_jobs table for the dead-letter recorder and operators."""

    def record(self, failed_job: FailedJobData) -> str:
        with get_session() as session:
            row = FailedJob(
                queue_name=failed_job.queue_name,
                job_name=failed_job.job_name,
                job_id=failed_job.job_id,
                job_data=failed_job.data,
                error=failed_job.error,
                stack_trace=failed_job.stack_trace,
                attempts_made=failed_job.attempts_made,
            )
            session.add(row)
            session.flush()
            row_id = row.id

        logger.warning(f"Recorded failed job: {failed_job.queue_name}/{failed_job.job_name}")
        return row_id

    def list_jobs(
        self,
        queue_name: Optional[str] = None,
        job_name: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[FailedJob]:
        with get_session() as session:
            query = session.query(FailedJob)
            if queue_name:
                query = query.filter(FailedJob.queue_name == queue_name)
            if job_name:
                query = query.filter(FailedJob.job_name == job_name)

            return (
                query.order_by(FailedJob.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def get(self, failed_job_id: str) -> Optional[FailedJob]:
        with get_session() as session:
            return session.get(FailedJob, failed_job_id)

    def delete(self, failed_job_id: str) -> bool:
        with get_session() as session:
            row = session.get(FailedJob, failed_job_id)
            if row is None:
                return False
            session.delete(row)

        logger.info(f"Deleted failed job {failed_job_id}")
        return True

    def cleanup(self, older_than_days: int = 30) -> int:
        """Delete failed jobs older than the given number of days."""
        cutoff = datetime.utcnow() - timedelta(days=older_than_days)

        with get_session() as session:
            count = (
                session.query(FailedJob)
                .filter(FailedJob.created_at < cutoff)
                .delete(synchronize_session=False)
            )

        logger.info(f"Cleaned up {count} failed jobs older than {older_than_days} days")
        return count

    def stats_by_queue(self) -> dict[str, int]:
        with get_session() as session:
            rows = (
                session.query(FailedJob.queue_name, func.count(FailedJob.id))
                .group_by(FailedJob.queue_name)
                .all()
            )
        return {queue_name: count for queue_name, count in rows}
