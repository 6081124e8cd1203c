"""
Enrollment embedding cache.

Holds enrollee id -> reference embeddings for the current session.
The cache is swapped wholesale on reload so readers never observe a
half-loaded mapping.
"""

import base64
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..logging_config import get_logger

logger = get_logger(__name__)


def embedding_from_bytes(data: bytes) -> Optional[np.ndarray]:
    """
    Decode a big-endian float32 embedding blob.

    Args:
        data: Raw bytes, 4 per component

    Returns:
        float32 vector, or None if the length is not a multiple of 4
    """
    if not data or len(data) % 4 != 0:
        return None
    return np.frombuffer(data, dtype='>f4').astype(np.float32)


def embedding_to_bytes(embedding: np.ndarray) -> bytes:
    return np.asarray(embedding, dtype='>f4').tobytes()


def parse_embedding(raw: Any) -> Optional[np.ndarray]:
    """
    Parse an embedding as delivered by the enrollment backend.

    Accepts a list of numbers, a numpy array, raw bytes or a base64
    string of big-endian float32 bytes.

    Returns:
        float32 vector, or None if the value is malformed or empty
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        return embedding_from_bytes(bytes(raw))
    if isinstance(raw, str):
        try:
            return embedding_from_bytes(base64.b64decode(raw, validate=True))
        except ValueError:
            return None
    try:
        vector = np.asarray(raw, dtype=np.float32).ravel()
    except (TypeError, ValueError):
        return None
    if vector.size == 0 or not np.all(np.isfinite(vector)):
        return None
    return vector


class EmbeddingCache:
    """
    Session-scoped map of enrollee id -> reference embeddings.

    Read-only during a session except for replace().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._embeddings: Dict[Any, Tuple[np.ndarray, ...]] = {}
        self._names: Dict[Any, str] = {}
        self.scope_id: Optional[str] = None

    def replace(
        self,
        embeddings: Mapping[Any, Sequence[Any]],
        names: Optional[Mapping[Any, str]] = None,
        scope_id: Optional[str] = None
    ) -> int:
        """
        Swap in a new set of reference embeddings.

        Malformed vectors are skipped with a warning; enrollees left with
        no usable vector are dropped.

        Args:
            embeddings: enrollee id -> one or more raw embeddings
            names: Optional enrollee id -> display name
            scope_id: Scope the embeddings were loaded for

        Returns:
            Number of enrollees in the cache
        """
        loaded: Dict[Any, Tuple[np.ndarray, ...]] = {}
        for enrollee_id, raw_vectors in embeddings.items():
            vectors: List[np.ndarray] = []
            for raw in raw_vectors:
                vector = parse_embedding(raw)
                if vector is None:
                    logger.warning(f'Skipping malformed embedding for enrollee {enrollee_id}')
                    continue
                vectors.append(vector)
            if vectors:
                loaded[enrollee_id] = tuple(vectors)

        with self._lock:
            self._embeddings = loaded
            self._names = dict(names or {})
            self.scope_id = scope_id

        logger.info(
            f'Loaded {sum(len(v) for v in loaded.values())} face embeddings '
            f'for {len(loaded)} enrollees (scope={scope_id})'
        )
        return len(loaded)

    def clear(self) -> None:
        with self._lock:
            self._embeddings = {}
            self._names = {}

    def items(self) -> List[Tuple[Any, Tuple[np.ndarray, ...]]]:
        with self._lock:
            return list(self._embeddings.items())

    def display_name(self, enrollee_id: Any) -> Optional[str]:
        with self._lock:
            return self._names.get(enrollee_id)

    def enrollee_ids(self) -> List[Any]:
        with self._lock:
            return list(self._embeddings)

    def __contains__(self, enrollee_id: Any) -> bool:
        with self._lock:
            return enrollee_id in self._embeddings

    def __len__(self) -> int:
        with self._lock:
            return len(self._embeddings)
