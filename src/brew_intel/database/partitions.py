"""Monthly partition lifecycle for the content_items table.

Partitions are recorded in the ``content_partitions`` ledger, one row per
calendar month named ``content_items_YYYY_MM``. Creating a partition that
already exists and dropping one that is already gone both count as success,
so every routine here can be re-run safely.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from brew_intel.config import get_config
from brew_intel.database.connection import get_session
from brew_intel.database.models import ContentItem, ContentPartition

logger = logging.getLogger(__name__)


def partition_name(year: int, month: int) -> str:
    return f"content_items_{year}_{month:02d}"


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """Shift a (year, month) pair by a number of months."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def partition_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the half-open date range ``[start, end)`` covered by a partition."""
    next_year, next_month = add_months(year, month, 1)
    return date(year, month, 1), date(next_year, next_month, 1)


def ensure_partition_row(session: Session, year: int, month: int) -> bool:
    """Insert the ledger row for a month if missing.

    Returns True when the partition was created by this call.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")

    start, end = partition_bounds(year, month)
    stmt = (
        sqlite_insert(ContentPartition)
        .values(
            name=partition_name(year, month),
            year=year,
            month=month,
            range_start=start,
            range_end=end,
            created_at=datetime.utcnow(),
        )
        .on_conflict_do_nothing()
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def promote_to_unique(item: ContentItem) -> None:
    """Turn a duplicate whose canonical is being deleted back into a unique item.

    The stored deduplication record is rewritten to match, keeping the
    original check details under ``formerDuplicateOf``.
    """
    data = dict(item.extracted_data or {})
    previous = data.get("deduplication") or {}

    data["deduplication"] = {
        "isDuplicate": False,
        "similarity": previous.get("similarity", 0.0),
        "candidatesChecked": previous.get("candidatesChecked", 0),
        "checkedAt": previous.get("checkedAt") or datetime.utcnow().isoformat(),
        "formerDuplicateOf": item.duplicate_of_id,
        "promotedAt": datetime.utcnow().isoformat(),
    }

    item.extracted_data = data
    item.is_duplicate = False
    item.duplicate_of_id = None
    item.updated_at = datetime.utcnow()


@dataclass
class PartitionInfo:
    """A partition and the number of content rows inside it."""

    name: str
    range_start: date
    range_end: date
    row_count: int = 0


class PartitionManager:
    """Keeps partitions ahead of writes and retires those past retention."""

    def __init__(
        self,
        retention_months: Optional[int] = None,
        lookahead_months: Optional[int] = None,
    ):
        config = get_config()
        self.retention_months = (
            retention_months if retention_months is not None else config.retention.content_months
        )
        self.lookahead_months = (
            lookahead_months
            if lookahead_months is not None
            else config.retention.partition_lookahead_months
        )

    def ensure_partition(self, year: int, month: int) -> Optional[str]:
        """Create the partition for a month.

        Returns its name when created, ``None`` when it already existed.
        """
        with get_session() as session:
            created = ensure_partition_row(session, year, month)

        name = partition_name(year, month)
        if created:
            logger.info(f"Created partition: {name}")
            return name

        logger.debug(f"Partition already exists for {year}-{month:02d}")
        return None

    def ensure_current_partitions(self, now: Optional[datetime] = None) -> list[str]:
        """Ensure partitions for the current month and the months ahead."""
        now = now or datetime.utcnow()
        created = []

        for offset in range(self.lookahead_months):
            year, month = add_months(now.year, now.month, offset)
            name = self.ensure_partition(year, month)
            if name:
                created.append(name)

        if created:
            logger.info(f"Ensured partitions exist: {', '.join(created)}")
        else:
            logger.debug("All required partitions already exist")

        return created

    def drop_partitions_older_than(
        self,
        months: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """Drop partitions that end on or before the retention cutoff.

        Content items published inside a dropped partition are deleted with it.
        """
        months = months if months is not None else self.retention_months
        now = now or datetime.utcnow()
        cutoff_year, cutoff_month = add_months(now.year, now.month, -months)
        cutoff = date(cutoff_year, cutoff_month, 1)

        dropped = []
        with get_session() as session:
            expired = (
                session.query(ContentPartition)
                .filter(ContentPartition.range_end <= cutoff)
                .order_by(ContentPartition.range_start)
                .all()
            )

            for partition in expired:
                start = datetime.combine(partition.range_start, datetime.min.time())
                end = datetime.combine(partition.range_end, datetime.min.time())

                # Unlink survivors that point into the partition being dropped
                doomed_ids = (
                    session.query(ContentItem.id)
                    .filter(
                        ContentItem.publication_date >= start,
                        ContentItem.publication_date < end,
                    )
                    .scalar_subquery()
                )
                survivors = (
                    session.query(ContentItem)
                    .filter(
                        ContentItem.duplicate_of_id.in_(doomed_ids),
                        ContentItem.publication_date >= end,
                    )
                    .all()
                )
                for survivor in survivors:
                    promote_to_unique(survivor)
                session.flush()

                deleted = (
                    session.query(ContentItem)
                    .filter(
                        ContentItem.publication_date >= start,
                        ContentItem.publication_date < end,
                    )
                    .delete(synchronize_session=False)
                )
                session.delete(partition)
                dropped.append(partition.name)
                logger.info(f"Dropped partition {partition.name} ({deleted} items)")

        if dropped:
            logger.info(f"Dropped {len(dropped)} old partitions: {', '.join(dropped)}")
        else:
            logger.debug("No old partitions to clean up")

        return dropped

    def run_maintenance(self, now: Optional[datetime] = None) -> dict:
        """Scheduled monthly routine: look-ahead creation then retention drop."""
        created = self.ensure_current_partitions(now)
        dropped = self.drop_partitions_older_than(now=now)
        return {"created": created, "dropped": dropped}

    def list_partitions(self) -> list[PartitionInfo]:
        """All partitions with their row counts, newest first."""
        with get_session() as session:
            partitions = (
                session.query(ContentPartition)
                .order_by(ContentPartition.range_start.desc())
                .all()
            )

            results = []
            for partition in partitions:
                start = datetime.combine(partition.range_start, datetime.min.time())
                end = datetime.combine(partition.range_end, datetime.min.time())
                row_count = (
                    session.query(func.count(ContentItem.id))
                    .filter(
                        ContentItem.publication_date >= start,
                        ContentItem.publication_date < end,
                    )
                    .scalar()
                )
                results.append(
                    PartitionInfo(
                        name=partition.name,
                        range_start=partition.range_start,
                        range_end=partition.range_end,
                        row_count=row_count or 0,
                    )
                )

        return results

    def partition_stats(self) -> dict[str, int]:
        """Row counts keyed by partition name."""
        return {partition.name: partition.row_count for partition in self.list_partitions()}
