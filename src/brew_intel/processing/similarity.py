"""TF-IDF weighted cosine similarity between two texts."""

import math
import re
from collections import Counter

import numpy as np

# Common English words that carry no meaning for matching announcements
STOPWORDS: frozenset[str] = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no nor
    not now of off on once only or other our ours ourselves out over own same she
    should so some such than that the their theirs them themselves then there these
    they this those through to too under until up very was we were what when where
    which while who whom why will with would you your yours yourself yourselves
    """.split()
)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens with stopwords removed."""
    if not text:
        return []
    return [token for token in TOKEN_PATTERN.findall(text.lower()) if token not in STOPWORDS]


def tfidf_matrix(documents: list[list[str]]) -> tuple[np.ndarray, list[str]]:
    """Build a TF-IDF matrix (documents x vocabulary).

    Term frequency is the raw count and idf is ``1 + ln(N / (1 + df))``.
    """
    vocabulary = sorted({token for doc in documents for token in doc})
    index = {term: i for i, term in enumerate(vocabulary)}
    n_docs = len(documents)

    counts = np.zeros((n_docs, len(vocabulary)), dtype=np.float64)
    for row, doc in enumerate(documents):
        for term, count in Counter(doc).items():
            counts[row, index[term]] = count

    document_frequency = np.count_nonzero(counts, axis=0)
    idf = np.array([1.0 + math.log(n_docs / (1.0 + df)) for df in document_frequency])

    return counts * idf, vocabulary


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Compute cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Cosine similarity score (0 when either vector is zero)
    """
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def tfidf_cosine(text1: str, text2: str) -> float:
    """TF-IDF weighted cosine similarity of two texts, in [0, 1]."""
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if not tokens1 or not tokens2:
        return 0.0

    matrix, _ = tfidf_matrix([tokens1, tokens2])
    return min(1.0, max(0.0, cosine_similarity(matrix[0], matrix[1])))
