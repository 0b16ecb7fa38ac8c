"""Extraction stage: OCR over images, then structured LLM extraction."""

import logging
import time
from typing import Optional

from brew_intel.database.content_store import ContentStore
from brew_intel.errors import ProviderUnavailable
from brew_intel.ingestion.base import Attachment
from brew_intel.processing.extractor import ContentExtractor, ExtractionInput, ExtractionResult
from brew_intel.processing.ocr import OCRResult, TesseractOCR, inject_ocr_into_html
from brew_intel.queues.jobs import Job, JobKind, QueueName
from brew_intel.queues.worker import Handler, JobQueues

logger = logging.getLogger(__name__)

# Source metadata forwarded to the LLM for each extraction job kind
METADATA_KEYS = {
    JobKind.EXTRACT_EMAIL: ("subject", "from", "date"),
    JobKind.EXTRACT_SOCIAL: ("url", "date"),
    JobKind.EXTRACT_RSS: ("title", "url", "date"),
}


def ocr_metadata(images: list[Attachment], results: list[OCRResult]) -> list[dict]:
    return [
        {
            "filename": image.filename,
            "text": result.text,
            "confidence": round(result.confidence, 4),
            "wordCount": len(result.words),
        }
        for image, result in zip(images, results)
    ]


class ExtractionStage:
    """Handlers for the ``extract`` queue.

    Deduplication is enqueued whether or not extraction succeeded.
    """

    def __init__(
        self,
        queues: JobQueues,
        store: Optional[ContentStore] = None,
        extractor: Optional[ContentExtractor] = None,
        ocr: Optional[TesseractOCR] = None,
    ):
        self.queues = queues
        self.store = store or ContentStore()
        self.extractor = extractor or ContentExtractor()
        self.ocr = ocr

    def handlers(self) -> dict[str, Handler]:
        return {kind: self.extract for kind in METADATA_KEYS}

    def run_ocr(self, item_id: str, images: list[Attachment]) -> list[OCRResult]:
        if not images or self.ocr is None:
            return []

        start = time.monotonic()
        results = self.ocr.extract_text_from_images([image.content for image in images])
        duration_ms = int((time.monotonic() - start) * 1000)

        recognized = sum(1 for result in results if result.text)
        logger.info(
            f"OCR extraction performance: item={item_id} images={len(images)} "
            f"recognized={recognized} duration_ms={duration_ms}"
        )
        return results

    def extract(self, job: Job) -> None:
        item_id = job.data["contentItemId"]
        item = self.store.get(item_id)
        stored = item.extracted_data or {}

        metadata = job.data.get("metadata") or stored.get("metadata") or {}
        metadata = {key: metadata[key] for key in METADATA_KEYS[job.name] if metadata.get(key)}
        brewery_name = job.data.get("breweryName") or stored.get("breweryName")
        images = [
            image
            for image in (Attachment.from_payload(a) for a in job.data.get("attachments") or [])
            if image.is_image
        ]

        logger.info(
            f"Extraction started: item={item_id} source={item.source_type} "
            f"images={len(images)} attempt={job.attempts_made}"
        )

        ocr_results = self.run_ocr(item_id, images)
        content = item.raw_content
        if any(result.text for result in ocr_results):
            # Inject into the collection-time content so a re-run does not stack OCR blocks
            content = inject_ocr_into_html(
                stored.get("originalContent") or item.raw_content,
                ocr_results,
                labels=[image.filename for image in images],
            )

        extraction_input = ExtractionInput(
            content=content,
            source_type=item.source_type,
            brewery_name=brewery_name,
            metadata=metadata,
        )

        try:
            result = self.extractor.extract(extraction_input)
        except ProviderUnavailable as e:
            if job.attempts_made < job.max_attempts:
                raise
            # Last attempt: record the failure and advance before giving up
            self._finish(item_id, images, ocr_results, content, ExtractionResult(success=False, error=str(e)))
            raise

        self._finish(item_id, images, ocr_results, content, result)

    def _finish(
        self,
        item_id: str,
        images: list[Attachment],
        ocr_results: list[OCRResult],
        content: str,
        result: ExtractionResult,
    ) -> None:
        self.store.update_extraction(
            item_id,
            ocr_metadata(images, ocr_results),
            result.to_record(),
            raw_content=content,
        )

        if result.success:
            logger.info(
                f"Extraction complete: item={item_id} contentType={result.data.content_type} "
                f"confidence={result.data.confidence:.2f} tokens={result.tokens_used}"
            )
        else:
            logger.warning(f"Extraction failed: item={item_id} error={result.error}")

        self.queues.enqueue(QueueName.DEDUPLICATE, JobKind.CHECK_DUPLICATE, {"contentItemId": item_id})
