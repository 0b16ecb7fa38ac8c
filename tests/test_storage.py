"""
Tests for the content store, failed job store and partition lifecycle.
"""

from datetime import date, datetime, timedelta

import pytest

from brew_intel.database import ContentStore, FailedJobData, FailedJobStore, PartitionManager
from brew_intel.database.connection import get_session
from brew_intel.database.migrations import check_schema_version, get_db_stats, migrate, vacuum_db
from brew_intel.database.models import ContentPartition, FailedJob
from brew_intel.database.partitions import add_months, partition_bounds, partition_name
from brew_intel.errors import ContentItemNotFound

DAY = datetime(2025, 6, 10, 12, 0)


class TestContentStore:
    """Tests for ContentStore operations."""

    def test_create_and_get(self, store):
        item_id = store.create(
            brewery_id="brewery-1",
            source_type="rss",
            raw_content="<p>Pumpkin ale is back</p>",
            publication_date=DAY,
            source_url="https://brewery.example/feed/1",
        )

        item = store.get(item_id)
        assert item.brewery_id == "brewery-1"
        assert item.is_duplicate is False
        assert item.duplicate_of_id is None
        assert item.is_extracted is False
        assert item.is_dedup_checked is False

    def test_create_rejects_unknown_source_type(self, store):
        with pytest.raises(ValueError):
            store.create("brewery-1", "myspace", "hello", DAY)

    def test_create_ensures_partition(self, store):
        store.create("brewery-1", "rss", "hello", datetime(2031, 2, 3))

        with get_session() as session:
            assert session.get(ContentPartition, "content_items_2031_02") is not None

    def test_get_missing_raises(self, store):
        with pytest.raises(ContentItemNotFound):
            store.get("does-not-exist")

    def test_update_extraction_merges_and_overwrites(self, store):
        item_id = store.create(
            "brewery-1", "email", "<img src='x'>", DAY, extracted_data={"metadata": {"subject": "Hi"}}
        )

        store.update_extraction(item_id, [], {"success": False, "error": "timeout"})
        store.update_extraction(
            item_id,
            [{"filename": "x.png", "text": "SALE", "confidence": 0.8, "wordCount": 1}],
            {"success": True, "contentType": "update", "confidence": 0.66, "summary": "Sale"},
            raw_content="SALE",
        )

        item = store.get(item_id)
        assert item.extracted_data["metadata"] == {"subject": "Hi"}
        assert item.extracted_data["hasOCR"] is True
        assert item.llm_extraction["summary"] == "Sale"
        assert item.confidence_score == 0.66
        assert item.raw_content == "SALE"

    def test_original_content_preserved_once(self, store):
        item_id = store.create("brewery-1", "email", "<img src='x'>", DAY)

        store.update_extraction(item_id, [], {"success": False}, raw_content="first OCR pass")
        store.update_extraction(item_id, [], {"success": False}, raw_content="second OCR pass")
        store.update_extraction(item_id, [], {"success": False}, raw_content="second OCR pass")

        item = store.get(item_id)
        assert item.raw_content == "second OCR pass"
        assert item.extracted_data["originalContent"] == "<img src='x'>"

    def test_unchanged_content_keeps_no_original(self, store):
        item_id = store.create("brewery-1", "rss", "plain text", DAY)

        store.update_extraction(item_id, [], {"success": False}, raw_content="plain text")

        assert "originalContent" not in store.get(item_id).extracted_data

    def test_list_for_digest_excludes_duplicates(self, store, make_item):
        a = make_item("a", DAY)
        b = make_item("b", DAY)
        make_item("c", DAY, brewery_id="brewery-9")
        make_item("late", DAY + timedelta(days=10))
        store.mark_duplicate(b, a, 0.9)

        items = store.list_for_digest(["brewery-1"], DAY - timedelta(days=1), DAY + timedelta(days=1))

        assert [item.id for item in items] == [a]
        assert store.list_for_digest([], DAY, DAY) == []

    def test_stats(self, store, make_item):
        raw = make_item("raw", DAY)
        extracted = make_item("extracted", DAY, summary="s")
        failed = make_item("failed", DAY)
        store.update_extraction(failed, [], {"success": False, "error": "bad"})
        store.record_dedup_check(failed, 0.1, 2)
        store.mark_duplicate(extracted, raw, 0.8)

        stats = store.stats()

        assert stats["total"] == 3
        assert stats["duplicates"] == 1
        assert stats["pending_extraction"] == 1
        assert stats["extraction_failed"] == 1
        assert stats["unique"] == 1


class TestFailedJobStore:
    """Tests for dead-letter storage."""

    def record(self, store, queue_name="extract", job_name="extract-email"):
        return store.record(
            FailedJobData(
                queue_name=queue_name,
                job_name=job_name,
                data={"contentItemId": "abc"},
                error="Claude unavailable",
                attempts_made=3,
                stack_trace="Traceback ...",
            )
        )

    def test_record_and_get(self, db):
        store = FailedJobStore()
        failed_id = self.record(store)

        row = store.get(failed_id)
        assert row.job_data == {"contentItemId": "abc"}
        assert row.attempts_made == 3

    def test_list_filters_and_pages(self, db):
        store = FailedJobStore()
        self.record(store)
        self.record(store)
        self.record(store, "collect", "scrape-instagram")

        assert len(store.list_jobs()) == 3
        assert len(store.list_jobs(queue_name="extract")) == 2
        assert len(store.list_jobs(job_name="scrape-instagram")) == 1
        assert len(store.list_jobs(limit=1, offset=1)) == 1

    def test_delete(self, db):
        store = FailedJobStore()
        failed_id = self.record(store)

        assert store.delete(failed_id) is True
        assert store.delete(failed_id) is False
        assert store.get(failed_id) is None

    def test_cleanup_by_age(self, db):
        store = FailedJobStore()
        old_id = self.record(store)
        new_id = self.record(store)

        with get_session() as session:
            session.get(FailedJob, old_id).created_at = datetime.utcnow() - timedelta(days=45)

        assert store.cleanup(older_than_days=30) == 1
        assert store.get(old_id) is None
        assert store.get(new_id) is not None

    def test_stats_by_queue(self, db):
        store = FailedJobStore()
        self.record(store)
        self.record(store, "collect", "fetch-rss")
        self.record(store, "collect", "fetch-rss")

        assert store.stats_by_queue() == {"extract": 1, "collect": 2}


class TestPartitionHelpers:
    """Tests for partition naming and month arithmetic."""

    def test_name(self):
        assert partition_name(2025, 3) == "content_items_2025_03"

    def test_add_months_crosses_years(self):
        assert add_months(2024, 11, 3) == (2025, 2)
        assert add_months(2025, 1, -1) == (2024, 12)
        assert add_months(2025, 6, -12) == (2024, 6)

    def test_bounds_are_half_open_month(self):
        assert partition_bounds(2024, 12) == (date(2024, 12, 1), date(2025, 1, 1))


class TestPartitionManager:
    """Tests for the partition lifecycle."""

    def test_ensure_partition_is_idempotent(self, db):
        manager = PartitionManager()

        assert manager.ensure_partition(2025, 7) == "content_items_2025_07"
        assert manager.ensure_partition(2025, 7) is None

    def test_invalid_month_rejected(self, db):
        with pytest.raises(ValueError):
            PartitionManager().ensure_partition(2025, 13)

    def test_current_and_next_two_months(self, db):
        manager = PartitionManager()

        created = manager.ensure_current_partitions(now=datetime(2024, 11, 15))

        assert created == [
            "content_items_2024_11",
            "content_items_2024_12",
            "content_items_2025_01",
        ]
        assert manager.ensure_current_partitions(now=datetime(2024, 11, 15)) == []

    def test_drop_older_than_retention(self, db, store, make_item):
        manager = PartitionManager()
        old = make_item("old news", datetime(2024, 5, 20))
        kept = make_item("recent", datetime(2025, 6, 2))
        manager.ensure_partition(2025, 7)

        dropped = manager.drop_partitions_older_than(12, now=datetime(2025, 6, 15))

        assert dropped == ["content_items_2024_05"]
        with pytest.raises(ContentItemNotFound):
            store.get(old)
        assert store.get(kept).raw_content == "recent"
        assert manager.drop_partitions_older_than(12, now=datetime(2025, 6, 15)) == []

    def test_boundary_partition_kept(self, db, make_item):
        manager = PartitionManager()
        make_item("june last year", datetime(2024, 6, 3))

        assert manager.drop_partitions_older_than(12, now=datetime(2025, 6, 15)) == []

    def test_survivor_pointing_into_dropped_partition_promoted(self, db, store, make_item):
        manager = PartitionManager()
        old = make_item("original", datetime(2024, 5, 31))
        survivor = make_item("repost", datetime(2024, 6, 1))
        store.mark_duplicate(survivor, old, 0.9)

        manager.drop_partitions_older_than(12, now=datetime(2025, 6, 15))

        item = store.get(survivor)
        assert item.is_duplicate is False
        assert item.duplicate_of_id is None
        dedup = item.extracted_data["deduplication"]
        assert dedup["isDuplicate"] is False
        assert "duplicateOf" not in dedup
        assert dedup["formerDuplicateOf"] == old
        assert dedup["similarity"] == 0.9

    def test_explicit_zero_overrides_config(self, db):
        manager = PartitionManager(retention_months=0, lookahead_months=0)

        assert manager.retention_months == 0
        assert manager.lookahead_months == 0
        assert manager.ensure_current_partitions(now=datetime(2025, 6, 15)) == []

    def test_list_partitions_with_counts(self, db, make_item):
        make_item("a", datetime(2025, 6, 1))
        make_item("b", datetime(2025, 6, 30, 23, 59))
        make_item("c", datetime(2025, 7, 1))

        manager = PartitionManager()
        stats = manager.partition_stats()

        assert stats == {"content_items_2025_07": 1, "content_items_2025_06": 2}
        assert manager.list_partitions()[0].name == "content_items_2025_07"


class TestMigrations:
    """Tests for schema management."""

    def test_schema_initialized(self, db):
        state = check_schema_version()

        assert state["is_initialized"] is True
        assert migrate()["status"] == "up_to_date"

    def test_db_stats(self, db, make_item):
        make_item("a", DAY)

        stats = get_db_stats()

        assert stats["content_items"] == 1
        assert stats["content_partitions"] == 1
        assert stats["failed_jobs"] == 0

    def test_vacuum_after_drop(self, db, make_item):
        make_item("old news " * 200, datetime(2020, 1, 5))
        PartitionManager().drop_partitions_older_than(12, now=datetime(2025, 6, 15))

        pages = vacuum_db()

        assert pages["pages_after"] <= pages["pages_before"]
