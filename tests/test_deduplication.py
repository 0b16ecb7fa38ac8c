"""
Tests for the duplicate detector and the duplicate-link rules of the content store.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from brew_intel.database.models import ContentItem
from brew_intel.database.connection import get_session
from brew_intel.processing.deduplication import DuplicateDetector, extract_text

DAY = datetime(2025, 6, 10, 12, 0)

SUMMARY = "IPA release party this Saturday from 4pm to 7pm at the taproom"


def assert_no_chains():
    with get_session() as session:
        items = session.query(ContentItem).all()
        by_id = {item.id: item for item in items}
        for item in items:
            if item.is_duplicate:
                assert item.duplicate_of_id is not None
                assert by_id[item.duplicate_of_id].is_duplicate is False
            else:
                assert item.duplicate_of_id is None


class TestCandidateSelection:
    """Tests for the temporal, per-brewery candidate window."""

    def test_window_is_three_days_each_side(self, store, make_item):
        target = make_item("Anniversary party", DAY)
        inside_before = make_item("Anniversary party", DAY - timedelta(days=3))
        inside_after = make_item("Anniversary party", DAY + timedelta(days=3))
        outside = make_item("Anniversary party", DAY + timedelta(days=4))
        other_brewery = make_item("Anniversary party", DAY, brewery_id="brewery-2")

        candidates = store.find_candidates("brewery-1", DAY, exclude_id=target)
        ids = {c.id for c in candidates}

        assert ids == {inside_before, inside_after}
        assert outside not in ids
        assert other_brewery not in ids

    def test_most_recent_first_and_capped(self, store, make_item):
        for hours in range(6):
            make_item(f"Post {hours}", DAY - timedelta(hours=hours))

        candidates = store.find_candidates("brewery-1", DAY, exclude_id="none", limit=4)

        assert len(candidates) == 4
        dates = [c.publication_date for c in candidates]
        assert dates == sorted(dates, reverse=True)

    def test_duplicates_are_not_candidates(self, store, make_item):
        a = make_item("Anniversary party", DAY)
        b = make_item("Anniversary party", DAY)
        store.mark_duplicate(b, a, 0.95)

        candidates = store.find_candidates("brewery-1", DAY, exclude_id="none")
        assert [c.id for c in candidates] == [a]

    def test_identical_text_outside_window_stays_unique(self, store, make_item):
        make_item("Barrel-aged stout bottle release", DAY, summary=SUMMARY)
        late = make_item("Barrel-aged stout bottle release", DAY + timedelta(days=4), summary=SUMMARY)

        result = DuplicateDetector().check_and_mark(late)

        assert result.is_duplicate is False
        assert result.candidates_checked == 0
        assert store.get(late).is_duplicate is False


class TestDecision:
    """Tests for scoring and the duplicate threshold."""

    def test_summary_preferred_over_raw_content(self, store, make_item):
        with_summary = store.get(make_item("raw text", DAY, summary="short summary"))
        without = store.get(make_item("raw text only", DAY))

        assert extract_text(with_summary) == "short summary"
        assert extract_text(without) == "raw text only"

    def test_no_candidates_is_unique(self, store, make_item):
        item_id = make_item("First post ever", DAY)

        result = DuplicateDetector().check_and_mark(item_id)

        assert result.is_duplicate is False
        item = store.get(item_id)
        assert item.is_dedup_checked
        assert item.extracted_data["deduplication"]["isDuplicate"] is False

    def test_exactly_threshold_is_duplicate(self, store, make_item):
        canonical = make_item("Candidate text", DAY)
        detector = DuplicateDetector()
        candidates = [store.get(canonical)]

        with patch(
            "brew_intel.processing.deduplication.signature_similarity", return_value=0.75
        ), patch("brew_intel.processing.deduplication.tfidf_cosine", return_value=0.2):
            result = detector.compare("Some new text", candidates)

        assert result.is_duplicate is True
        assert result.duplicate_of == canonical
        assert result.similarity == 0.75
        assert result.cosine_similarity == 0.2

    def test_just_below_threshold_is_unique(self, store, make_item):
        make_item("Candidate text", DAY)
        detector = DuplicateDetector()
        candidates = store.find_candidates("brewery-1", DAY, exclude_id="none")

        with patch(
            "brew_intel.processing.deduplication.signature_similarity", return_value=0.7499
        ), patch("brew_intel.processing.deduplication.tfidf_cosine") as cosine:
            result = detector.compare("Some new text", candidates)

        assert result.is_duplicate is False
        assert result.similarity == 0.7499
        cosine.assert_not_called()

    def test_final_similarity_is_max_of_both_signals(self, store, make_item):
        make_item("Candidate text", DAY)
        candidates = store.find_candidates("brewery-1", DAY, exclude_id="none")

        with patch(
            "brew_intel.processing.deduplication.signature_similarity", return_value=0.8
        ), patch("brew_intel.processing.deduplication.tfidf_cosine", return_value=0.93):
            result = DuplicateDetector().compare("Some new text", candidates)

        assert result.minhash_similarity == 0.8
        assert result.similarity == 0.93

    def test_early_exit_on_clear_duplicate(self, store, make_item):
        for hours in range(5):
            make_item(f"Candidate {hours}", DAY - timedelta(hours=hours))
        candidates = store.find_candidates("brewery-1", DAY, exclude_id="none")

        with patch(
            "brew_intel.processing.deduplication.signature_similarity", return_value=0.95
        ) as minhash, patch("brew_intel.processing.deduplication.tfidf_cosine", return_value=0.5):
            result = DuplicateDetector().compare("Some new text", candidates)

        assert minhash.call_count == 1
        assert result.duplicate_of == candidates[0].id
        assert result.candidates_checked == 5

    def test_check_and_mark_flags_near_duplicate(self, store, make_item):
        original = make_item("raw a", DAY, summary=SUMMARY)
        repeat = make_item("raw b", DAY + timedelta(days=1), summary=SUMMARY)

        result = DuplicateDetector().check_and_mark(repeat)

        assert result.is_duplicate is True
        assert result.duplicate_of == original
        item = store.get(repeat)
        assert item.is_duplicate is True
        assert item.duplicate_of_id == original
        assert item.extracted_data["deduplication"]["duplicateOf"] == original
        assert item.extracted_data["deduplication"]["similarity"] >= 0.75

    def test_rerun_is_noop_for_duplicate(self, store, make_item):
        original = make_item("raw a", DAY, summary=SUMMARY)
        repeat = make_item("raw b", DAY, summary=SUMMARY)
        detector = DuplicateDetector()
        detector.check_and_mark(repeat)

        result = detector.check_and_mark(repeat)

        assert result.is_duplicate is True
        assert result.duplicate_of == original


class TestNoDuplicateChains:
    """Duplicates always point at a non-duplicate item."""

    def test_marking_canonical_repoints_its_duplicates(self, store, make_item):
        a = make_item("a", DAY)
        b = make_item("b", DAY)
        c = make_item("c", DAY)

        assert store.mark_duplicate(b, a, 0.9) == a
        assert store.mark_duplicate(a, c, 0.9) == c

        assert store.get(b).duplicate_of_id == c
        assert store.get(b).extracted_data["deduplication"]["duplicateOf"] == c
        assert_no_chains()

    def test_target_that_became_duplicate_is_followed(self, store, make_item):
        a = make_item("a", DAY)
        b = make_item("b", DAY)
        c = make_item("c", DAY)
        store.mark_duplicate(b, a, 0.9)

        assert store.mark_duplicate(c, b, 0.9) == a
        assert store.get(c).duplicate_of_id == a
        assert_no_chains()

    def test_mutual_race_leaves_exactly_one_canonical(self, store, make_item):
        """Both items saw each other as candidates; the second mark is refused."""
        a = make_item("a", DAY)
        b = make_item("b", DAY)

        assert store.mark_duplicate(a, b, 0.9) == b
        assert store.mark_duplicate(b, a, 0.9) is None

        assert store.get(a).is_duplicate is True
        item_b = store.get(b)
        assert item_b.is_duplicate is False
        assert item_b.is_dedup_checked
        assert_no_chains()

    def test_self_reference_refused(self, store, make_item):
        a = make_item("a", DAY)

        assert store.mark_duplicate(a, a, 1.0) is None
        assert store.get(a).is_duplicate is False

    def test_unknown_target_raises(self, store, make_item):
        from brew_intel.errors import ContentItemNotFound

        a = make_item("a", DAY)

        with pytest.raises(ContentItemNotFound):
            store.mark_duplicate(a, "missing", 0.9)
