"""Queue runtime: per-stage worker pools, retries and dead-lettering."""

from brew_intel.queues.dead_letter import DeadLetterRecorder
from brew_intel.queues.jobs import FailureEvent, Job, JobKind, QueueName
from brew_intel.queues.worker import JobQueues, Stage

__all__ = [
    "DeadLetterRecorder",
    "FailureEvent",
    "Job",
    "JobKind",
    "JobQueues",
    "QueueName",
    "Stage",
]
