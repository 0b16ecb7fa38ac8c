"""Collection stage: persist raw items and hand them to extraction."""

import logging
from typing import Optional

from brew_intel.database.content_store import ContentStore
from brew_intel.errors import PermanentJobError
from brew_intel.ingestion import BaseCollector, RawItem, raw_item_from_email
from brew_intel.queues.jobs import Job, JobKind, QueueName
from brew_intel.queues.worker import Handler, JobQueues

logger = logging.getLogger(__name__)

# Extraction job kind per source type
EXTRACTION_KINDS = {
    "email": JobKind.EXTRACT_EMAIL,
    "instagram": JobKind.EXTRACT_SOCIAL,
    "facebook": JobKind.EXTRACT_SOCIAL,
    "rss": JobKind.EXTRACT_RSS,
}

SCRAPE_KINDS = (JobKind.SCRAPE_INSTAGRAM, JobKind.SCRAPE_FACEBOOK, JobKind.FETCH_RSS)


class CollectionStage:
    """Handlers for the ``collect`` queue."""

    def __init__(
        self,
        queues: JobQueues,
        store: Optional[ContentStore] = None,
        collectors: Optional[dict[str, BaseCollector]] = None,
    ):
        self.queues = queues
        self.store = store or ContentStore()
        self.collectors = dict(collectors or {})

    def handlers(self) -> dict[str, Handler]:
        handlers: dict[str, Handler] = {
            JobKind.PROCESS_EMAIL: self.process_email,
            JobKind.COLLECT_ITEM: self.collect_item,
        }
        for kind in SCRAPE_KINDS:
            handlers[kind] = self.scrape
        return handlers

    def store_raw_item(self, item: RawItem) -> str:
        """Write the item, then enqueue its extraction."""
        item_id = self.store.create(
            brewery_id=item.brewery_id,
            source_type=item.source_type,
            raw_content=item.raw_html_or_text,
            publication_date=item.publication_date,
            source_url=item.source_url,
            extracted_data={
                "breweryName": item.brewery_name,
                "metadata": item.metadata,
                "attachments": [a.describe() for a in item.attachments],
            },
        )

        # Enqueue only after the write has committed
        self.queues.enqueue(
            QueueName.EXTRACT,
            EXTRACTION_KINDS[item.source_type],
            {
                "contentItemId": item_id,
                "breweryName": item.brewery_name,
                "metadata": item.metadata,
                "attachments": [a.to_payload() for a in item.images],
            },
        )

        logger.info(
            f"Content collected: item={item_id} brewery={item.brewery_id} "
            f"source={item.source_type} images={len(item.images)}"
        )
        return item_id

    def process_email(self, job: Job) -> None:
        self.store_raw_item(raw_item_from_email(job.data))

    def collect_item(self, job: Job) -> None:
        self.store_raw_item(RawItem.from_payload(job.data))

    def scrape(self, job: Job) -> None:
        collector = self.collectors.get(job.name)
        if collector is None:
            raise PermanentJobError(f"No collector registered for {job.name}")

        items = collector.collect(job.data)
        for item in items:
            self.store_raw_item(item)

        logger.info(
            f"Scrape complete: kind={job.name} brewery={job.data.get('breweryId')} items={len(items)}"
        )
