"""Content fingerprinting using MinHash for near-duplicate detection."""

import logging
import re
from dataclasses import dataclass

import numpy as np
from datasketch import MinHash

logger = logging.getLogger(__name__)

# MinHash configuration
NUM_PERMUTATIONS = 128
SHINGLE_SIZE = 3
SEED = 1


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not text:
        return ""

    text = text.lower()
    text = re.sub(r"[^\w\s]", "", text)  # Remove punctuation
    text = re.sub(r"\s+", " ", text).strip()  # Normalize whitespace
    return text


def shingle(text: str, size: int = SHINGLE_SIZE) -> set[str]:
    """Return the set of overlapping character n-grams of the normalized text.

    Text shorter than ``size`` after normalization has no shingles.
    """
    normalized = normalize(text)
    return {normalized[i : i + size] for i in range(len(normalized) - size + 1)}


@dataclass
class Signature:
    """A MinHash signature plus the number of shingles it summarises."""

    hashvalues: np.ndarray
    shingle_count: int

    @property
    def is_empty(self) -> bool:
        return self.shingle_count == 0


def compute_signature(
    text: str,
    num_perm: int = NUM_PERMUTATIONS,
    shingle_size: int = SHINGLE_SIZE,
) -> Signature:
    """Compute the MinHash signature of a text's character shingles.

    Text without shingles gets the all-max sentinel, which never matches.
    """
    mh = MinHash(num_perm=num_perm, seed=SEED)

    shingles = shingle(text, shingle_size)
    for token in shingles:
        mh.update(token.encode("utf-8"))

    return Signature(hashvalues=mh.hashvalues.copy(), shingle_count=len(shingles))


def signature_similarity(sig1: Signature, sig2: Signature) -> float:
    """Estimate Jaccard similarity as the fraction of agreeing positions.

    Symmetric in its arguments; 0.0 whenever either side is empty.
    """
    if sig1.is_empty or sig2.is_empty:
        return 0.0

    if len(sig1.hashvalues) != len(sig2.hashvalues):
        raise ValueError(
            f"Cannot compare signatures of different sizes "
            f"({len(sig1.hashvalues)} vs {len(sig2.hashvalues)})"
        )

    matches = np.count_nonzero(sig1.hashvalues == sig2.hashvalues)
    return float(matches) / len(sig1.hashvalues)


def compute_similarity(text1: str, text2: str) -> float:
    """Compute approximate Jaccard similarity between two texts using MinHash."""
    return signature_similarity(compute_signature(text1), compute_signature(text2))


def exact_jaccard(text1: str, text2: str, shingle_size: int = SHINGLE_SIZE) -> float:
    """True shingle-set Jaccard similarity, for diagnostics."""
    a = shingle(text1, shingle_size)
    b = shingle(text2, shingle_size)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)
