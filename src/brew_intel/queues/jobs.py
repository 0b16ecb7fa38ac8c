"""Job and failure-event types shared by the worker pools."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class QueueName:
    """Names of the pipeline queues."""

    COLLECT = "collect"
    EXTRACT = "extract"
    DEDUPLICATE = "deduplicate"

    ALL = (COLLECT, EXTRACT, DEDUPLICATE)


class JobKind:
    """Job kind discriminators, dispatched on by each stage."""

    PROCESS_EMAIL = "process-email"
    COLLECT_ITEM = "collect-item"
    SCRAPE_INSTAGRAM = "scrape-instagram"
    SCRAPE_FACEBOOK = "scrape-facebook"
    FETCH_RSS = "fetch-rss"

    EXTRACT_EMAIL = "extract-email"
    EXTRACT_SOCIAL = "extract-social"
    EXTRACT_RSS = "extract-rss"

    CHECK_DUPLICATE = "check-duplicate"


@dataclass
class Job:
    """A unit of work bound to one queue."""

    queue_name: str
    name: str
    data: dict[str, Any]
    max_attempts: int = 3
    attempts_made: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Job({self.queue_name}/{self.name} id={self.id} attempts={self.attempts_made})>"


@dataclass
class FailureEvent:
    """Emitted once per failed attempt.

    ``final`` is set when no further attempt will be made, either because the
    attempt cap was reached or because the error is permanent.
    """

    job: Job
    error: BaseException
    final: bool
    stack_trace: Optional[str] = None
    duration_ms: int = 0
