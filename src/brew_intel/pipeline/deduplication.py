"""Deduplication stage: flag items that restate existing content."""

import logging
from typing import Optional

from brew_intel.processing.deduplication import DuplicateDetector
from brew_intel.queues.jobs import Job, JobKind
from brew_intel.queues.worker import Handler

logger = logging.getLogger(__name__)


class DeduplicationStage:
    """Handlers for the ``deduplicate`` queue."""

    def __init__(self, detector: Optional[DuplicateDetector] = None):
        self.detector = detector or DuplicateDetector()

    def handlers(self) -> dict[str, Handler]:
        return {JobKind.CHECK_DUPLICATE: self.check_duplicate}

    def check_duplicate(self, job: Job) -> None:
        item_id = job.data["contentItemId"]
        result = self.detector.check_and_mark(item_id)

        if result.is_duplicate:
            logger.info(
                f"Duplicate detected: item={item_id} duplicateOf={result.duplicate_of} "
                f"similarity={result.similarity:.3f}"
            )

        logger.info(
            f"Deduplication complete: item={item_id} isDuplicate={result.is_duplicate} "
            f"similarity={result.similarity:.3f} candidates={result.candidates_checked}"
        )
