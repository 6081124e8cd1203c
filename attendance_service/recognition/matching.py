"""
Embedding matching module.

Matches face embeddings against enrolled people using cosine similarity.

Similarity is always raw cosine in [-1, 1] (1.0 = identical direction),
and the recognition threshold is compared on that same scale.
"""

from typing import Any, Iterable, Optional, Sequence, Tuple

import numpy as np

from ..models import MatchResult


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    """
    Cosine similarity dot(a, b) / (|a| * |b|).

    Args:
        a: First embedding
        b: Second embedding

    Returns:
        Similarity in [-1, 1], or None if the vectors differ in length
        or either has zero norm
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape or a.size == 0:
        return None

    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0 or not np.isfinite(norm):
        return None

    similarity = float(np.dot(a, b)) / norm
    # Rounding can push identical vectors a hair past 1.0
    return max(-1.0, min(1.0, similarity))


def best_similarity(query: np.ndarray, references: Iterable[np.ndarray]) -> Optional[float]:
    """Maximum similarity of the query against an enrollee's references."""
    best: Optional[float] = None
    for reference in references:
        similarity = cosine_similarity(query, reference)
        if similarity is not None and (best is None or similarity > best):
            best = similarity
    return best


def match_embedding(
    query: np.ndarray,
    entries: Iterable[Tuple[Any, Sequence[np.ndarray]]]
) -> Optional[MatchResult]:
    """
    Find the enrollee whose references are most similar to the query.

    No threshold is applied here; callers compare the returned
    similarity against their own threshold.

    Args:
        query: Face embedding to match
        entries: (enrollee_id, reference embeddings) pairs, e.g.
            EmbeddingCache.items()

    Returns:
        Best MatchResult, or None if nothing could be compared (empty
        cache, or every reference had a mismatched length). On equal
        similarity the first enrollee in iteration order wins.
    """
    best: Optional[MatchResult] = None
    for enrollee_id, references in entries:
        similarity = best_similarity(query, references)
        if similarity is None:
            continue
        if best is None or similarity > best.similarity:
            best = MatchResult(enrollee_id=enrollee_id, similarity=similarity)
    return best
