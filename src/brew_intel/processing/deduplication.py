"""Near-duplicate detection for brewery content.

An item is compared with the non-duplicate items its brewery published in a
window around its publication date. MinHash over character shingles scores
every candidate cheaply; the single best hit is then re-scored with TF-IDF
cosine similarity and the higher of the two scores is reported.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from brew_intel.config import DeduplicationConfig, get_config
from brew_intel.database.content_store import ContentStore
from brew_intel.database.models import ContentItem
from brew_intel.processing.fingerprint import compute_signature, signature_similarity
from brew_intel.processing.similarity import tfidf_cosine

logger = logging.getLogger(__name__)


@dataclass
class DeduplicationResult:
    """Outcome of a duplicate check."""

    is_duplicate: bool
    duplicate_of: Optional[str] = None
    similarity: float = 0.0
    minhash_similarity: float = 0.0
    cosine_similarity: Optional[float] = None
    candidates_checked: int = 0


def extract_text(item: ContentItem) -> str:
    """Prefer the LLM summary (denser, less noisy) over the raw content."""
    extraction = (item.extracted_data or {}).get("llmExtraction") or {}
    summary = extraction.get("summary")
    if summary:
        return summary
    return item.raw_content or ""


class DuplicateDetector:
    """Decides whether an item restates an existing item of the same brewery."""

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        config: Optional[DeduplicationConfig] = None,
    ):
        self.store = store or ContentStore()
        self.config = config or get_config().deduplication

    def is_duplicate_score(self, similarity: float) -> bool:
        return similarity >= self.config.duplicate_threshold

    def find_candidates(self, item: ContentItem) -> list[ContentItem]:
        return self.store.find_candidates(
            brewery_id=item.brewery_id,
            publication_date=item.publication_date,
            exclude_id=item.id,
            window_days=self.config.window_days,
            limit=self.config.max_candidates,
        )

    def compare(self, text: str, candidates: Iterable[ContentItem]) -> DeduplicationResult:
        """Score a text against candidates and decide."""
        candidates = list(candidates)
        if not candidates:
            return DeduplicationResult(is_duplicate=False)

        signature = compute_signature(
            text,
            num_perm=self.config.num_perm,
            shingle_size=self.config.shingle_size,
        )

        best_similarity = 0.0
        best_candidate: Optional[ContentItem] = None

        for candidate in candidates:
            candidate_signature = compute_signature(
                extract_text(candidate),
                num_perm=self.config.num_perm,
                shingle_size=self.config.shingle_size,
            )
            similarity = signature_similarity(signature, candidate_signature)

            if similarity > best_similarity:
                best_similarity = similarity
                best_candidate = candidate

            if best_similarity >= self.config.early_exit_threshold:
                break

        result = DeduplicationResult(
            is_duplicate=False,
            similarity=best_similarity,
            minhash_similarity=best_similarity,
            candidates_checked=len(candidates),
        )

        if best_candidate is None or not self.is_duplicate_score(best_similarity):
            return result

        cosine = tfidf_cosine(text, extract_text(best_candidate))
        result.cosine_similarity = cosine
        result.similarity = max(best_similarity, cosine)
        result.is_duplicate = self.is_duplicate_score(result.similarity)
        result.duplicate_of = best_candidate.id if result.is_duplicate else None
        return result

    def check(self, item: ContentItem) -> DeduplicationResult:
        """Run the check for a stored item without writing anything."""
        candidates = self.find_candidates(item)

        if not candidates:
            logger.debug(f"No candidates found for {item.id}")
            return DeduplicationResult(is_duplicate=False)

        logger.debug(f"Checking {len(candidates)} candidates for duplicates of {item.id}")
        result = self.compare(extract_text(item), candidates)

        if result.is_duplicate:
            logger.info(
                f"Duplicate detected for {item.id}: {result.duplicate_of} "
                f"(Jaccard: {result.minhash_similarity:.2f}, "
                f"Cosine: {result.cosine_similarity:.2f})"
            )
        else:
            logger.debug(
                f"No duplicate found for {item.id} (max similarity: {result.similarity:.2f})"
            )

        return result

    def check_and_mark(self, item_id: str) -> DeduplicationResult:
        """Check a stored item and persist the decision."""
        item = self.store.get(item_id)

        if item.is_duplicate:
            logger.debug(f"{item_id} is already a duplicate of {item.duplicate_of_id}")
            return DeduplicationResult(
                is_duplicate=True,
                duplicate_of=item.duplicate_of_id,
                similarity=(item.extracted_data or {}).get("deduplication", {}).get("similarity", 0.0),
            )

        result = self.check(item)

        if result.is_duplicate:
            canonical_id = self.store.mark_duplicate(
                item_id,
                result.duplicate_of,
                result.similarity,
                result.candidates_checked,
            )
            if canonical_id is None:
                result.is_duplicate = False
                result.duplicate_of = None
            else:
                result.duplicate_of = canonical_id
        else:
            self.store.record_dedup_check(item_id, result.similarity, result.candidates_checked)

        return result
