"""
Recognition algorithms package.

Contains modules for:
- Bounding box geometry (IoU distance)
- Face tracking
- Embedding matching and the enrollment embedding cache
- Attendance decisions
"""

from .geometry import NO_MATCH_DISTANCE, compute_iou, iou_distance
from .tracker import FaceTrack, FaceTracker, TrackSnapshot, TrackState
from .matching import cosine_similarity, match_embedding
from .embeddings import EmbeddingCache, parse_embedding
from .attendance import AttendanceEngine, SessionState

__all__ = [
    'NO_MATCH_DISTANCE',
    'compute_iou',
    'iou_distance',
    'FaceTrack',
    'FaceTracker',
    'TrackSnapshot',
    'TrackState',
    'cosine_similarity',
    'match_embedding',
    'EmbeddingCache',
    'parse_embedding',
    'AttendanceEngine',
    'SessionState',
]
