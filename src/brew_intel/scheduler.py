"""Scheduler for storage housekeeping and stalled-item recovery."""

import logging
import signal
import sys
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from brew_intel.config import get_config

if TYPE_CHECKING:
    from brew_intel.pipeline import Pipeline

logger = logging.getLogger(__name__)


def partition_job():
    """Ensure upcoming partitions exist and drop those past retention."""
    logger.info("Running scheduled partition maintenance")

    from brew_intel.database import PartitionManager

    try:
        result = PartitionManager().run_maintenance()
        logger.info(
            f"Partition maintenance complete: {len(result['created'])} created, "
            f"{len(result['dropped'])} dropped"
        )
    except Exception as e:
        logger.error(f"Partition maintenance failed: {e}")


def dlq_cleanup_job():
    """Delete dead-letter records older than the retention window."""
    logger.info("Running scheduled dead-letter cleanup")
    config = get_config()

    from brew_intel.database import FailedJobStore

    try:
        count = FailedJobStore().cleanup(config.retention.failed_job_days)
        logger.info(f"Dead-letter cleanup complete: {count} removed")
    except Exception as e:
        logger.error(f"Dead-letter cleanup failed: {e}")


def make_recovery_job(pipeline: "Pipeline"):
    """Build the job that re-enqueues stalled items into a running pipeline."""

    def recovery_job():
        logger.info("Running scheduled stalled-item recovery")
        try:
            pipeline.recover_stalled()
        except Exception as e:
            logger.error(f"Stalled-item recovery failed: {e}")

    return recovery_job


def run_job(job_name: str):
    """Run a specific housekeeping job immediately.

    Args:
        job_name: Name of job to run (partitions, dlq-cleanup)
    """
    jobs = {
        "partitions": partition_job,
        "dlq-cleanup": dlq_cleanup_job,
    }

    if job_name not in jobs:
        raise ValueError(f"Unknown job: {job_name}")

    jobs[job_name]()


def parse_cron(cron_str: str) -> dict:
    """Parse a cron string into APScheduler trigger kwargs.

    Args:
        cron_str: Standard cron format "minute hour day month day_of_week"

    Returns:
        Dict of trigger kwargs
    """
    parts = cron_str.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron format: {cron_str}")

    return {
        "minute": parts[0],
        "hour": parts[1],
        "day": parts[2],
        "month": parts[3],
        "day_of_week": parts[4],
    }


def build_scheduler(foreground: bool = True, pipeline: Optional["Pipeline"] = None):
    """Create a scheduler with the housekeeping jobs registered.

    The recovery job is only added when a pipeline is given, since it
    enqueues into that pipeline's worker pools.
    """
    config = get_config()

    scheduler = BlockingScheduler() if foreground else BackgroundScheduler()

    try:
        partition_trigger = CronTrigger(**parse_cron(config.scheduler.partition_cron))
        dlq_trigger = CronTrigger(**parse_cron(config.scheduler.dlq_cleanup_cron))
        recovery_trigger = CronTrigger(**parse_cron(config.scheduler.recovery_cron))
    except ValueError as e:
        logger.error(f"Invalid cron configuration: {e}")
        sys.exit(1)

    scheduler.add_job(
        partition_job,
        trigger=partition_trigger,
        id="partitions",
        name="Partition Maintenance",
        replace_existing=True,
    )

    scheduler.add_job(
        dlq_cleanup_job,
        trigger=dlq_trigger,
        id="dlq-cleanup",
        name="Dead-Letter Cleanup",
        replace_existing=True,
    )

    if pipeline is not None:
        scheduler.add_job(
            make_recovery_job(pipeline),
            trigger=recovery_trigger,
            id="recovery",
            name="Stalled-Item Recovery",
            replace_existing=True,
        )

    logger.info("Scheduler configured with jobs:")
    logger.info(f"  Partitions: {config.scheduler.partition_cron}")
    logger.info(f"  Dead-letter cleanup: {config.scheduler.dlq_cleanup_cron}")
    if pipeline is not None:
        logger.info(f"  Recovery: {config.scheduler.recovery_cron}")

    return scheduler


def start_scheduler(foreground: bool = True, pipeline: Optional["Pipeline"] = None):
    """Start the scheduler daemon.

    Args:
        foreground: If True, run in foreground (blocking).
                   If False, run in background.
        pipeline: Running pipeline to recover stalled items into
    """
    scheduler = build_scheduler(foreground, pipeline)

    # Handle shutdown gracefully
    def shutdown(signum, frame):
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        if pipeline is not None:
            pipeline.stop(timeout=30)
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    if foreground:
        logger.info("Running in foreground. Press Ctrl+C to stop.")
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            pass
    else:
        scheduler.start()
        logger.info("Scheduler running in background")
        return scheduler


def stop_scheduler(scheduler: Optional[BackgroundScheduler] = None):
    """Stop the scheduler.

    Args:
        scheduler: Scheduler instance to stop
    """
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
