"""
Attendance decision module.

Turns per-frame embedding matches into at-most-once-per-session
attendance records:
- a match counts only if its cosine similarity reaches the threshold
- counts are cumulative over the session, not consecutive
- once an enrollee reaches min_recognitions they are recorded present
  exactly once; only a session reset allows recording them again
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set

import numpy as np

from ..config import Config
from ..logging_config import get_logger
from ..models import Enrollee, FaceObservation, MatchResult
from .embeddings import EmbeddingCache
from .matching import match_embedding
from .tracker import FaceTrack

logger = get_logger(__name__)


class EnrollmentStore(Protocol):
    def load_enrollees(self, scope_id: Optional[str] = None) -> List[Enrollee]:
        """Enrollees (with reference embeddings) in scope, or all if None."""
        ...


class AttendanceRecorder(Protocol):
    def record_presence(
        self,
        enrollee_id: Any,
        scope_id: Optional[str],
        timestamp: datetime
    ) -> bool:
        """Append a 'present' record. Returns True once it is stored."""
        ...


class SessionState:
    """
    Embedding cache, recognition counts and marked-present set for one
    session.

    A reset replaces the whole object, so a decision still in flight for
    the previous session can never leak into the new one, and a cycle
    always matches against the cache of the session it counts into.
    """

    def __init__(self, scope_id: Optional[str] = None, cache: Optional[EmbeddingCache] = None):
        self.scope_id = scope_id
        self.cache = cache if cache is not None else EmbeddingCache()
        self.started_at = time.time()
        self._lock = threading.Lock()
        self._counts: Dict[Any, int] = {}
        self._marked: Set[Any] = set()

    def increment(self, enrollee_id: Any) -> int:
        with self._lock:
            count = self._counts.get(enrollee_id, 0) + 1
            self._counts[enrollee_id] = count
            return count

    def recognition_count(self, enrollee_id: Any) -> int:
        with self._lock:
            return self._counts.get(enrollee_id, 0)

    def is_marked(self, enrollee_id: Any) -> bool:
        with self._lock:
            return enrollee_id in self._marked

    def mark(self, enrollee_id: Any) -> None:
        with self._lock:
            self._marked.add(enrollee_id)

    @property
    def recognition_counts(self) -> Dict[Any, int]:
        with self._lock:
            return dict(self._counts)

    @property
    def marked_present(self) -> Set[Any]:
        with self._lock:
            return set(self._marked)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'scope': self.scope_id,
                'startedAt': self.started_at,
                'recognitionCounts': {str(k): v for k, v in self._counts.items()},
                'markedPresent': sorted(str(k) for k in self._marked),
                'enrollees': len(self.cache),
            }


class AttendanceEngine:
    """
    Identity resolution and attendance commits for one camera.

    Owns the current SessionState (and through it the EmbeddingCache);
    nothing is module-global. Each decision reads self.session once and
    works on that object, so reset_session() on another thread swaps
    cache, counts and marks in a single assignment.
    """

    def __init__(
        self,
        config: Config,
        store: EnrollmentStore,
        recorder: AttendanceRecorder,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the engine and start the first session.

        Args:
            config: Service configuration
            store: Source of enrollee embeddings
            recorder: Sink for attendance records
            clock: Timestamp source for records
        """
        self.config = config
        self.store = store
        self.recorder = recorder
        self.clock = clock
        self._lock = threading.Lock()
        self.session = SessionState()

        self.reset_session(config.session_scope)

    @property
    def cache(self) -> EmbeddingCache:
        return self.session.cache

    @property
    def scope_id(self) -> Optional[str]:
        return self.session.scope_id

    def reset_session(self, scope_id: Optional[str] = None) -> None:
        """
        Start a new session.

        Loads the embedding cache for the given scope (None = all
        enrollees) into a fresh session with empty counts and no marks.
        This is the only way to record someone twice. If loading fails
        the current session stays in place.

        Args:
            scope_id: Scope (e.g. course) for the new session

        Raises:
            EnrollmentError: If the store cannot provide enrollees
        """
        enrollees = self.store.load_enrollees(scope_id)
        cache = EmbeddingCache()
        cache.replace(
            {e.enrollee_id: e.embeddings for e in enrollees},
            names={e.enrollee_id: e.display_name for e in enrollees if e.display_name},
            scope_id=scope_id,
        )
        session = SessionState(scope_id, cache)

        with self._lock:
            self.session = session

        if scope_id is not None:
            logger.info(f'Attendance tracking reset for new session of scope {scope_id}')
        else:
            logger.info('Attendance tracking reset for new session (no scope filter)')

    def match(
        self,
        embedding: np.ndarray,
        session: Optional[SessionState] = None
    ) -> Optional[MatchResult]:
        """Best match at or above the recognition threshold, else None."""
        if session is None:
            session = self.session
        result = match_embedding(embedding, session.cache.items())
        if result is None or result.similarity < self.config.recognition_threshold:
            return None
        return result

    def process_track(self, track: FaceTrack, session: Optional[SessionState] = None) -> bool:
        """
        Match a tracked face and count the recognition.

        A recognised track is labelled with the enrollee's id and name.

        Returns:
            True if attendance was recorded by this call
        """
        if session is None:
            session = self.session
        if track.embedding is None:
            return False

        result = self.match(track.embedding, session)
        if result is None:
            return False

        track.set_identity(result.enrollee_id, session.cache.display_name(result.enrollee_id))
        return self._register(result, session)

    def process_observation(
        self,
        observation: FaceObservation,
        session: Optional[SessionState] = None
    ) -> bool:
        """
        Match a raw detection (no tracking) and count the recognition.

        Returns:
            True if attendance was recorded by this call
        """
        if session is None:
            session = self.session
        if not observation.has_embedding:
            return False

        result = self.match(observation.embedding, session)
        if result is None:
            return False
        return self._register(result, session)

    def process_cycle(
        self,
        tracks: Sequence[FaceTrack],
        observations: Sequence[FaceObservation]
    ) -> List[Any]:
        """
        Run the decision step for one processed frame.

        In 'tracks' mode only confirmed tracks associated in this cycle
        are considered; in 'observations' mode, or with tracking
        disabled, every detection is.

        Returns:
            Enrollee ids recorded present during this cycle
        """
        session = self.session
        recorded: List[Any] = []
        use_observations = (
            self.config.attendance_source == 'observations'
            or not self.config.tracking_enabled
        )
        if use_observations:
            for observation in observations:
                if not observation.has_embedding:
                    continue
                result = self.match(observation.embedding, session)
                if result is not None and self._register(result, session):
                    recorded.append(result.enrollee_id)
        else:
            min_hits = self.config.tracking_min_hits
            for track in tracks:
                if track.age != 0 or not track.is_confirmed(min_hits):
                    continue
                if self.process_track(track, session):
                    recorded.append(track.enrollee_id)
        return recorded

    def _register(self, result: MatchResult, session: SessionState) -> bool:
        enrollee_id = result.enrollee_id

        count = session.increment(enrollee_id)
        logger.debug(
            f'Recognized enrollee {enrollee_id} '
            f'(similarity={result.similarity:.3f}, count={count})'
        )

        if count < self.config.attendance_min_recognitions or session.is_marked(enrollee_id):
            return False

        timestamp = self.clock()
        if not self.recorder.record_presence(enrollee_id, session.scope_id, timestamp):
            logger.warning(f'Attendance for enrollee {enrollee_id} not stored, will retry')
            return False

        session.mark(enrollee_id)
        logger.info(
            f'✅ Enrollee {enrollee_id} marked present '
            f'(scope={session.scope_id}, recognitions={count})'
        )
        return True

    def was_marked_present(self, enrollee_id: Any) -> bool:
        return self.session.is_marked(enrollee_id)

    def session_snapshot(self) -> Dict[str, Any]:
        return self.session.to_dict()
