"""
Attendance service wiring.

Assembles tracker, attendance engine, frame scheduler, frame buffer and
callbacks for one camera, and exposes the read-only views the HTTP API
serves.
"""

import threading
import time
from typing import Any, Dict, List, Optional

from .camera import OpenCVCapture
from .config import Config
from .enrollment import HttpEnrollmentStore
from .events import HttpAttendanceRecorder
from .logging_config import get_logger
from .recognition.attendance import AttendanceEngine, AttendanceRecorder, EnrollmentStore
from .recognition.tracker import FaceTracker, TrackSnapshot
from .streaming import FrameBuffer
from .utils.timing import format_uptime
from .video_loop import FacePipeline, FrameScheduler, FrameSource
from .visualization import draw_tracks

logger = get_logger(__name__)


class AttendanceService:
    """One camera's capture -> track -> attendance pipeline."""

    def __init__(
        self,
        config: Config,
        source: FrameSource,
        pipeline: FacePipeline,
        store: EnrollmentStore,
        recorder: AttendanceRecorder
    ):
        """
        Args:
            config: Service configuration
            source: Capture collaborator
            pipeline: Detection / embedding collaborator
            store: Enrollment collaborator
            recorder: Attendance persistence collaborator

        Raises:
            EnrollmentError: If the first session cannot load enrollees
        """
        self.config = config
        self.tracker = FaceTracker(config)
        self.engine = AttendanceEngine(config, store, recorder)
        self.frames = FrameBuffer()
        self.scheduler = FrameScheduler(
            config,
            source,
            pipeline,
            self.tracker,
            engine=self.engine,
            annotate=draw_tracks,
        )

        self._lock = threading.Lock()
        self._latest_tracks: List[TrackSnapshot] = []
        self._last_error: Optional[str] = None
        self._error_count = 0

        self.scheduler.add_processed_frame_callback(self.frames.set_frame)
        self.scheduler.add_tracked_faces_callback(self._on_tracked_faces)
        self.scheduler.add_error_callback(self._on_error)

    def _on_tracked_faces(self, tracks: List[TrackSnapshot]) -> None:
        with self._lock:
            self._latest_tracks = tracks

    def _on_error(self, error: Exception) -> None:
        with self._lock:
            self._last_error = f'{type(error).__name__}: {error}'
            self._error_count += 1

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def reset_session(self, scope_id: Optional[str] = None) -> None:
        """
        Start a new attendance session (e.g. next class period).

        Tracks are kept; only recognition counts, marks and the
        enrollment cache change.
        """
        self.engine.reset_session(scope_id)

    def tracks(self) -> List[TrackSnapshot]:
        """Tracks reported by the most recent processed frame."""
        with self._lock:
            return list(self._latest_tracks)

    def status(self) -> Dict[str, Any]:
        started_at = self.scheduler.started_at
        uptime = time.time() - started_at if started_at and self.scheduler.is_running else 0.0
        with self._lock:
            last_error = self._last_error
            error_count = self._error_count
        return {
            'status': 'ok',
            'running': self.scheduler.is_running,
            'uptime': format_uptime(uptime),
            'cameraId': self.config.camera_id,
            'processedFrames': self.scheduler.processed_frames,
            'activeTracks': self.tracker.track_count,
            'scope': self.engine.scope_id,
            'errors': error_count,
            'lastError': last_error,
        }


def build_service(config: Config) -> AttendanceService:
    """
    Build a service wired to the camera, InsightFace and the backend.

    Args:
        config: Service configuration

    Returns:
        AttendanceService (not started)
    """
    # Import here so the core works without the optional pipeline extra
    from .face_app import InsightFacePipeline, initialize_face_app

    return AttendanceService(
        config,
        source=OpenCVCapture(config),
        pipeline=InsightFacePipeline(initialize_face_app()),
        store=HttpEnrollmentStore(config),
        recorder=HttpAttendanceRecorder(config),
    )
