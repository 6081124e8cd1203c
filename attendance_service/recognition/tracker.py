"""
Face tracking module.

Tracks faces across frames using IoU (Intersection over Union) matching.

Each update cycle ages every track, evicts tracks older than max_age,
then greedily associates detections to tracks by smallest 1 - IoU
distance. Ties are broken by lowest track id, then lowest detection
index, so identical inputs always produce identical track ids.
"""

import enum
import itertools
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import Config
from ..logging_config import get_logger
from ..models import FaceObservation
from .geometry import iou_distance

logger = get_logger(__name__)


class TrackState(enum.Enum):
    NEW = 'new'
    ACTIVE = 'active'
    CONFIRMED = 'confirmed'
    EVICTED = 'evicted'


@dataclass(frozen=True)
class TrackSnapshot:
    """Immutable copy of a FaceTrack, safe to hand to other threads."""

    track_id: int
    bbox: Any
    embedding: Optional[np.ndarray]
    last_seen: float
    age: int
    total_hits: int
    confirmed: bool
    recognized: bool
    enrollee_id: Any = None
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.recognized:
            name = self.display_name or str(self.enrollee_id)
            return f'{name} (ID: {self.enrollee_id})'
        return f'Face #{self.track_id}'

    def to_dict(self) -> Dict[str, Any]:
        bbox = None
        if hasattr(self.bbox, 'x'):
            bbox = {
                'x': self.bbox.x,
                'y': self.bbox.y,
                'width': self.bbox.width,
                'height': self.bbox.height,
            }
        return {
            'trackId': self.track_id,
            'bbox': bbox,
            'lastSeen': self.last_seen,
            'age': self.age,
            'totalHits': self.total_hits,
            'confirmed': self.confirmed,
            'recognized': self.recognized,
            'enrolleeId': self.enrollee_id,
            'displayName': self.display_name,
        }


class FaceTrack:
    """
    Represents a single face track across frames.

    Mutated only by the tracker's driver thread.
    """

    def __init__(self, track_id: int, observation: FaceObservation, now: float):
        """
        Initialize face track from its first detection.

        Args:
            track_id: Unique track identifier
            observation: Detection that started the track
            now: Timestamp of the detection (seconds)
        """
        self.track_id = track_id
        self.bbox = observation.bbox
        self.embedding: Optional[np.ndarray] = (
            observation.embedding if observation.has_embedding else None
        )
        self.last_seen = now
        self.age = 0
        self.total_hits = 1
        self.recognized = False
        self.enrollee_id: Any = None
        self.display_name: Optional[str] = None
        self.evicted = False

    def update(self, observation: FaceObservation, now: float) -> None:
        """
        Apply a matched detection.

        The embedding is only replaced when the detection carries one.
        """
        self.bbox = observation.bbox
        self.last_seen = now
        if observation.has_embedding:
            self.embedding = observation.embedding
        self.total_hits += 1
        self.age = 0

    def increment_age(self) -> None:
        self.age += 1

    def set_identity(self, enrollee_id: Any, display_name: Optional[str]) -> None:
        self.enrollee_id = enrollee_id
        self.display_name = display_name
        self.recognized = True

    def is_confirmed(self, min_hits: int) -> bool:
        return self.total_hits >= min_hits

    def state(self, min_hits: int) -> TrackState:
        if self.evicted:
            return TrackState.EVICTED
        if self.is_confirmed(min_hits):
            return TrackState.CONFIRMED
        if self.total_hits == 1:
            return TrackState.NEW
        return TrackState.ACTIVE

    def snapshot(self, min_hits: int) -> TrackSnapshot:
        return TrackSnapshot(
            track_id=self.track_id,
            bbox=self.bbox,
            embedding=self.embedding,
            last_seen=self.last_seen,
            age=self.age,
            total_hits=self.total_hits,
            confirmed=self.is_confirmed(min_hits),
            recognized=self.recognized,
            enrollee_id=self.enrollee_id,
            display_name=self.display_name,
        )

    def __repr__(self) -> str:
        return (
            f'FaceTrack(id={self.track_id}, age={self.age}, '
            f'hits={self.total_hits}, enrollee={self.enrollee_id})'
        )


class FaceTracker:
    """
    Manages multiple face tracks across frames.

    Matches detected faces to existing tracks using IoU. Only the driver
    thread calls update(); other threads read through tracks(),
    confirmed_tracks() and snapshots(), which return copies.
    """

    def __init__(self, config: Config):
        """
        Initialize face tracker.

        Args:
            config: Service configuration
        """
        self.enabled = config.tracking_enabled
        self.max_distance = config.tracking_max_distance
        self.max_age = config.tracking_max_age
        self.min_hits = config.tracking_min_hits

        self._tracks: Dict[int, FaceTrack] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()

        logger.info(
            f'Created face tracker: enabled={self.enabled}, '
            f'max_distance={self.max_distance}, max_age={self.max_age}, '
            f'min_hits={self.min_hits}'
        )

    def update(
        self,
        observations: Sequence[FaceObservation],
        now: Optional[float] = None
    ) -> List[FaceTrack]:
        """
        Run one association cycle.

        Args:
            observations: Detections from the current frame
            now: Cycle timestamp in seconds (defaults to time.time())

        Returns:
            Active tracks after the update, ordered by track id. With
            tracking disabled, one fresh track per detection.
        """
        if now is None:
            now = time.time()

        if not self.enabled:
            return [FaceTrack(next(self._ids), obs, now) for obs in observations]

        with self._lock:
            for track in self._tracks.values():
                track.increment_age()

            expired = [tid for tid, t in self._tracks.items() if t.age > self.max_age]
            for tid in expired:
                track = self._tracks.pop(tid)
                track.evicted = True
                logger.debug(f'Evicted track {tid} (age {track.age} > {self.max_age})')

            if not observations:
                return self._ordered()

            matches, unmatched = self._associate(observations)

            for obs_idx, track_id in matches:
                self._tracks[track_id].update(observations[obs_idx], now)

            for obs_idx in unmatched:
                track = FaceTrack(next(self._ids), observations[obs_idx], now)
                self._tracks[track.track_id] = track
                logger.debug(f'Created new track {track.track_id}')

            return self._ordered()

    def _associate(
        self,
        observations: Sequence[FaceObservation]
    ) -> Tuple[List[Tuple[int, int]], List[int]]:
        """
        Greedy assignment on the 1 - IoU distance matrix.

        Taking candidate pairs in ascending (distance, track id,
        detection index) order and skipping used rows/columns is the same
        as repeatedly picking the global minimum of what remains.

        Returns:
            (list of (detection index, track id), unmatched detection indices)
        """
        track_ids = sorted(self._tracks)
        distances = self._distance_matrix(observations, track_ids)

        candidates = [
            (float(distances[i, j]), track_ids[j], i)
            for i in range(len(observations))
            for j in range(len(track_ids))
            if distances[i, j] < self.max_distance
        ]
        candidates.sort()

        used_tracks = set()
        used_observations = set()
        matches: List[Tuple[int, int]] = []
        for _, track_id, obs_idx in candidates:
            if track_id in used_tracks or obs_idx in used_observations:
                continue
            matches.append((obs_idx, track_id))
            used_tracks.add(track_id)
            used_observations.add(obs_idx)

        unmatched = [i for i in range(len(observations)) if i not in used_observations]
        return matches, unmatched

    def _distance_matrix(
        self,
        observations: Sequence[FaceObservation],
        track_ids: List[int]
    ) -> np.ndarray:
        distances = np.ones((len(observations), len(track_ids)), dtype=np.float64)
        for i, obs in enumerate(observations):
            for j, track_id in enumerate(track_ids):
                distances[i, j] = iou_distance(obs.bbox, self._tracks[track_id].bbox)
        return distances

    def _ordered(self) -> List[FaceTrack]:
        return [self._tracks[tid] for tid in sorted(self._tracks)]

    def tracks(self) -> List[FaceTrack]:
        """All active tracks, ordered by id."""
        with self._lock:
            return self._ordered()

    def confirmed_tracks(self) -> List[FaceTrack]:
        """Tracks with at least min_hits associations."""
        with self._lock:
            return [t for t in self._ordered() if t.is_confirmed(self.min_hits)]

    def get_track(self, track_id: int) -> Optional[FaceTrack]:
        with self._lock:
            return self._tracks.get(track_id)

    def snapshots(self) -> List[TrackSnapshot]:
        with self._lock:
            return [t.snapshot(self.min_hits) for t in self._ordered()]

    @property
    def track_count(self) -> int:
        with self._lock:
            return len(self._tracks)

    def clear(self) -> None:
        """Drop all tracks. Track ids keep increasing."""
        with self._lock:
            for track in self._tracks.values():
                track.evicted = True
            self._tracks.clear()
        logger.info('Cleared all tracks')
