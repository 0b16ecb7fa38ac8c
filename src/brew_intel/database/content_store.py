"""Persistent record of content items and their duplicate links."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, aliased

from brew_intel.database.connection import get_session
from brew_intel.database.models import ContentItem
from brew_intel.database.partitions import ensure_partition_row
from brew_intel.errors import ContentItemNotFound

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("email", "instagram", "facebook", "rss")


@dataclass
class StalledItems:
    """Items whose pipeline progress stopped before completion."""

    needs_extraction: list[str] = field(default_factory=list)
    needs_deduplication: list[str] = field(default_factory=list)


class ContentStore:
    """Owns identity and state transitions for every content item.

    Every method runs in its own short transaction touching a single item
    (``mark_duplicate`` additionally re-points items that referenced the
    newly-marked duplicate).
    """

    def create(
        self,
        brewery_id: str,
        source_type: str,
        raw_content: str,
        publication_date: datetime,
        source_url: Optional[str] = None,
        extracted_data: Optional[dict] = None,
    ) -> str:
        """Persist a new item in the raw state and return its id."""
        if source_type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source type: {source_type}")

        with get_session() as session:
            ensure_partition_row(session, publication_date.year, publication_date.month)

            item = ContentItem(
                brewery_id=brewery_id,
                source_type=source_type,
                source_url=source_url,
                raw_content=raw_content or "",
                publication_date=publication_date,
                extracted_data=dict(extracted_data or {}),
            )
            session.add(item)
            session.flush()
            item_id = item.id

        logger.debug(f"Created content item {item_id} ({source_type}) for brewery {brewery_id}")
        return item_id

    def get(self, item_id: str) -> ContentItem:
        with get_session() as session:
            item = session.get(ContentItem, item_id)
            if item is None:
                raise ContentItemNotFound(item_id)
            return item

    def update_extraction(
        self,
        item_id: str,
        ocr_results: list[dict],
        llm_extraction: dict,
        raw_content: Optional[str] = None,
    ) -> None:
        """Store extraction output, overwriting any earlier extraction.

        Collection-time metadata already in ``extracted_data`` is kept. The
        first time ``raw_content`` is rewritten, the collection-time content
        is preserved under ``originalContent`` so a re-run starts from it.
        """
        with get_session() as session:
            item = session.get(ContentItem, item_id)
            if item is None:
                raise ContentItemNotFound(item_id)

            data = dict(item.extracted_data or {})
            data["hasOCR"] = len(ocr_results) > 0
            data["ocrResults"] = ocr_results
            data["llmExtraction"] = llm_extraction

            if raw_content and raw_content != item.raw_content:
                data.setdefault("originalContent", item.raw_content)
                item.raw_content = raw_content
            item.extracted_data = data

            if llm_extraction.get("success"):
                item.confidence_score = llm_extraction.get("confidence")
            else:
                item.confidence_score = None

    def find_candidates(
        self,
        brewery_id: str,
        publication_date: datetime,
        exclude_id: str,
        window_days: int = 3,
        limit: int = 50,
    ) -> list[ContentItem]:
        """Non-duplicate items of one brewery published within the window.

        Ordered most recent first and capped at ``limit``.
        """
        start = publication_date - timedelta(days=window_days)
        end = publication_date + timedelta(days=window_days)

        with get_session() as session:
            return (
                session.query(ContentItem)
                .filter(
                    ContentItem.brewery_id == brewery_id,
                    ContentItem.is_duplicate.is_(False),
                    ContentItem.id != exclude_id,
                    ContentItem.publication_date >= start,
                    ContentItem.publication_date <= end,
                )
                .order_by(ContentItem.publication_date.desc())
                .limit(limit)
                .all()
            )

    def mark_duplicate(
        self,
        item_id: str,
        duplicate_of_id: str,
        similarity: float,
        candidates_checked: int = 0,
    ) -> Optional[str]:
        """Flag an item as a duplicate of a canonical (non-duplicate) item.

        Returns the id the item now points at, or ``None`` when the item was
        left unique because its would-be canonical already points back at it.
        An item that is already a duplicate is left untouched.
        """
        with get_session() as session:
            canonical_id = duplicate_of_id

            # Bounded: each redirect follows one link and links never chain
            for _ in range(3):
                if self._try_mark(session, item_id, canonical_id):
                    break

                item = session.get(ContentItem, item_id)
                if item is None:
                    raise ContentItemNotFound(item_id)
                if item.is_duplicate:
                    logger.debug(f"{item_id} already marked duplicate of {item.duplicate_of_id}")
                    return item.duplicate_of_id

                target = session.get(ContentItem, canonical_id)
                if target is None:
                    raise ContentItemNotFound(canonical_id)
                if target.duplicate_of_id == item_id or target.duplicate_of_id is None:
                    logger.info(
                        f"{canonical_id} is already a duplicate of {item_id}; "
                        f"keeping {item_id} canonical"
                    )
                    self._write_dedup_info(session, item_id, None, similarity, candidates_checked)
                    return None

                logger.debug(
                    f"{canonical_id} became a duplicate of {target.duplicate_of_id}, redirecting"
                )
                canonical_id = target.duplicate_of_id
            else:
                raise RuntimeError(f"Could not resolve canonical item for {item_id}")

            # Items that pointed at this one now point at its canonical
            children = (
                session.query(ContentItem).filter(ContentItem.duplicate_of_id == item_id).all()
            )
            for child in children:
                child.duplicate_of_id = canonical_id
                child.updated_at = datetime.utcnow()
                data = dict(child.extracted_data or {})
                if data.get("deduplication"):
                    data["deduplication"] = {**data["deduplication"], "duplicateOf": canonical_id}
                    child.extracted_data = data
            if children:
                logger.info(f"Re-pointed {len(children)} duplicates of {item_id} to {canonical_id}")

            self._write_dedup_info(session, item_id, canonical_id, similarity, candidates_checked)

        logger.info(
            f"Marked {item_id} as duplicate of {canonical_id} (similarity: {similarity:.2f})"
        )
        return canonical_id

    def record_dedup_check(
        self,
        item_id: str,
        similarity: float,
        candidates_checked: int,
    ) -> None:
        """Record a completed check that found the item unique."""
        with get_session() as session:
            item = session.get(ContentItem, item_id)
            if item is None:
                raise ContentItemNotFound(item_id)
            if item.is_duplicate:
                return
            self._write_dedup_info(session, item_id, None, similarity, candidates_checked)

    def list_for_digest(
        self,
        brewery_ids: list[str],
        start: datetime,
        end: datetime,
    ) -> list[ContentItem]:
        """Clean (non-duplicate) content published in ``[start, end)``."""
        if not brewery_ids:
            return []

        with get_session() as session:
            return (
                session.query(ContentItem)
                .filter(
                    ContentItem.brewery_id.in_(brewery_ids),
                    ContentItem.is_duplicate.is_(False),
                    ContentItem.publication_date >= start,
                    ContentItem.publication_date < end,
                )
                .order_by(ContentItem.publication_date.desc())
                .all()
            )

    def find_stalled(self, older_than: datetime, limit: int = 500) -> StalledItems:
        """Find items created before ``older_than`` that never finished a stage."""
        stalled = StalledItems()

        with get_session() as session:
            items = (
                session.query(ContentItem)
                .filter(
                    ContentItem.is_duplicate.is_(False),
                    ContentItem.created_at < older_than,
                )
                .order_by(ContentItem.created_at)
                .all()
            )

            for item in items:
                if not item.is_extracted:
                    stalled.needs_extraction.append(item.id)
                elif not item.is_dedup_checked:
                    stalled.needs_deduplication.append(item.id)

                if len(stalled.needs_extraction) + len(stalled.needs_deduplication) >= limit:
                    break

        return stalled

    def stats(self) -> dict:
        """Counts of items by pipeline state."""
        counts = {
            "total": 0,
            "pending_extraction": 0,
            "extraction_failed": 0,
            "pending_deduplication": 0,
            "unique": 0,
            "duplicates": 0,
        }

        with get_session() as session:
            for item in session.query(ContentItem).all():
                counts["total"] += 1
                if item.is_duplicate:
                    counts["duplicates"] += 1
                    continue
                if not item.is_extracted:
                    counts["pending_extraction"] += 1
                    continue
                if not item.llm_extraction.get("success"):
                    counts["extraction_failed"] += 1
                if item.is_dedup_checked:
                    counts["unique"] += 1
                else:
                    counts["pending_deduplication"] += 1

        return counts

    def _try_mark(self, session: Session, item_id: str, canonical_id: str) -> bool:
        """Conditionally flag the item; succeeds only if both rows are non-duplicates."""
        if canonical_id == item_id:
            return False

        target = aliased(ContentItem)
        target_is_canonical = (
            select(target.id)
            .where(target.id == canonical_id, target.is_duplicate.is_(False))
            .exists()
        )

        result = session.execute(
            update(ContentItem)
            .where(
                ContentItem.id == item_id,
                ContentItem.is_duplicate.is_(False),
                target_is_canonical,
            )
            .values(
                is_duplicate=True,
                duplicate_of_id=canonical_id,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _write_dedup_info(
        self,
        session: Session,
        item_id: str,
        duplicate_of_id: Optional[str],
        similarity: float,
        candidates_checked: int,
    ) -> None:
        item = session.get(ContentItem, item_id, populate_existing=True)
        data = dict(item.extracted_data or {})
        now = datetime.utcnow().isoformat()

        info = {
            "isDuplicate": duplicate_of_id is not None,
            "similarity": similarity,
            "candidatesChecked": candidates_checked,
            "checkedAt": now,
        }
        if duplicate_of_id is not None:
            info["duplicateOf"] = duplicate_of_id
            info["detectedAt"] = now

        data["deduplication"] = info
        item.extracted_data = data
