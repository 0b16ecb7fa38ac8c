"""Assembly of the three stages into one running pipeline."""

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from brew_intel.config import Config, get_config
from brew_intel.database.content_store import ContentStore, StalledItems
from brew_intel.database.failed_jobs import FailedJobStore
from brew_intel.ingestion import BaseCollector, RawItem, default_collectors
from brew_intel.pipeline.collection import EXTRACTION_KINDS, SCRAPE_KINDS, CollectionStage
from brew_intel.pipeline.deduplication import DeduplicationStage
from brew_intel.pipeline.extraction import ExtractionStage
from brew_intel.processing.deduplication import DuplicateDetector
from brew_intel.processing.extractor import ContentExtractor
from brew_intel.processing.ocr import TesseractOCR
from brew_intel.queues.dead_letter import DeadLetterRecorder
from brew_intel.queues.jobs import Job, JobKind, QueueName
from brew_intel.queues.worker import JobQueues, Stage

logger = logging.getLogger(__name__)


class Pipeline:
    """Collection, extraction and deduplication worker pools wired together.

    Collaborators default to the real implementations built from config and
    can be replaced for tests or alternative deployments.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[ContentStore] = None,
        failed_jobs: Optional[FailedJobStore] = None,
        extractor: Optional[ContentExtractor] = None,
        ocr: Optional[TesseractOCR] = None,
        detector: Optional[DuplicateDetector] = None,
        collectors: Optional[dict[str, BaseCollector]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or get_config()
        self.store = store or ContentStore()

        if ocr is None and self.config.ocr.enabled:
            ocr = TesseractOCR(self.config.ocr)

        self.queues = JobQueues()
        self.collection = CollectionStage(
            self.queues,
            store=self.store,
            collectors=default_collectors(collectors),
        )
        self.extraction = ExtractionStage(
            self.queues,
            store=self.store,
            extractor=extractor or ContentExtractor(config=self.config.extraction),
            ocr=ocr,
        )
        self.deduplication = DeduplicationStage(
            detector or DuplicateDetector(store=self.store, config=self.config.deduplication)
        )

        policies = self.config.queues
        for queue_name, handlers, policy in (
            (QueueName.COLLECT, self.collection.handlers(), policies.collect),
            (QueueName.EXTRACT, self.extraction.handlers(), policies.extract),
            (QueueName.DEDUPLICATE, self.deduplication.handlers(), policies.deduplicate),
        ):
            self.queues.register(Stage(queue_name, handlers, policy, sleep=sleep))

        self.dead_letters = DeadLetterRecorder(failed_jobs)
        self.dead_letters.attach(*self.queues.stages)

    def submit_raw_item(self, item: Union[RawItem, dict]) -> Job:
        """Queue a normalized raw item for collection."""
        if isinstance(item, RawItem):
            item = item.to_payload()
        return self.queues.enqueue(QueueName.COLLECT, JobKind.COLLECT_ITEM, item)

    def submit_email(self, payload: dict) -> Job:
        """Queue an inbound email for collection."""
        return self.queues.enqueue(QueueName.COLLECT, JobKind.PROCESS_EMAIL, payload)

    def submit_scrape(self, kind: str, options: dict) -> Job:
        """Queue a scrape or feed fetch for one brewery."""
        if kind not in SCRAPE_KINDS:
            raise ValueError(f"Unknown scrape kind: {kind}")
        return self.queues.enqueue(QueueName.COLLECT, kind, options)

    def start(self) -> None:
        self.queues.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.queues.stop(timeout)

    def run_until_idle(self) -> None:
        self.queues.run_until_idle()

    def recover_stalled(self, older_than: Optional[datetime] = None) -> StalledItems:
        """Re-enqueue items whose extraction or duplicate check never ran.

        Image attachments are not kept on the item, so recovered extraction
        runs on the stored content only.
        """
        if older_than is None:
            grace = timedelta(minutes=self.config.retention.stalled_after_minutes)
            older_than = datetime.utcnow() - grace

        stalled = self.store.find_stalled(older_than)

        for item_id in stalled.needs_extraction:
            item = self.store.get(item_id)
            self.queues.enqueue(
                QueueName.EXTRACT,
                EXTRACTION_KINDS[item.source_type],
                {"contentItemId": item_id},
            )

        for item_id in stalled.needs_deduplication:
            self.queues.enqueue(QueueName.DEDUPLICATE, JobKind.CHECK_DUPLICATE, {"contentItemId": item_id})

        if stalled.needs_extraction or stalled.needs_deduplication:
            logger.info(
                f"Recovered stalled items: extraction={len(stalled.needs_extraction)} "
                f"deduplication={len(stalled.needs_deduplication)}"
            )
        else:
            logger.debug("No stalled items found")

        return stalled
