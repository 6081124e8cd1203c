"""
Main video processing loop.

Drives the recognition pipeline at a fixed cadence on one thread:
- Frame capture
- Frame skip / detection interval gating
- Face detection (external pipeline)
- Face tracking
- Attendance decisions
- Result callbacks

Cycles never overlap. A failing cycle is reported through the error
callbacks and the loop carries on with the next tick.
"""

import threading
import time
from typing import Any, Callable, List, Optional, Protocol, Sequence

from .config import Config
from .logging_config import get_logger
from .models import FaceObservation
from .recognition.attendance import AttendanceEngine
from .recognition.tracker import FaceTracker, TrackSnapshot

logger = get_logger(__name__)

Frame = Any
FrameCallback = Callable[[Frame], None]
TracksCallback = Callable[[List[TrackSnapshot]], None]
ErrorCallback = Callable[[Exception], None]
Annotator = Callable[[Frame, Sequence[TrackSnapshot]], Frame]


class FrameSource(Protocol):
    def open(self) -> None: ...

    def next_frame(self) -> Optional[Frame]:
        """Blocking read; None when no frame is available."""
        ...

    def release(self) -> None: ...


class FacePipeline(Protocol):
    def process(self, frame: Frame) -> List[FaceObservation]:
        """One observation per detected face. May raise."""
        ...


class FrameGate:
    """
    Decides which captured frames get detection and recognition work.

    A frame is admitted when it is every (skip_frames + 1)-th frame and
    at least detection_interval_ms have passed since the last admitted
    frame. Recognition is due at most once per recognition_interval_ms.
    """

    def __init__(
        self,
        skip_frames: int,
        detection_interval_ms: int,
        recognition_interval_ms: int,
        clock: Callable[[], float] = time.monotonic
    ):
        self.skip_frames = skip_frames
        self.detection_interval = detection_interval_ms / 1000.0
        self.recognition_interval = recognition_interval_ms / 1000.0
        self.clock = clock
        self.reset()

    def reset(self) -> None:
        self.frame_count = 0
        self._last_detection: Optional[float] = None
        self._last_recognition: Optional[float] = None

    def admit(self) -> bool:
        """Count a captured frame and decide whether to process it."""
        self.frame_count += 1
        if self.frame_count % (self.skip_frames + 1) != 0:
            return False

        now = self.clock()
        if self._last_detection is not None and now - self._last_detection < self.detection_interval:
            return False
        self._last_detection = now
        return True

    def recognition_due(self) -> bool:
        now = self.clock()
        if self._last_recognition is not None and now - self._last_recognition < self.recognition_interval:
            return False
        self._last_recognition = now
        return True


class FrameScheduler:
    """
    Fixed-interval capture -> detect -> track -> decide loop.

    start() and stop() are idempotent. stop() prevents new cycles,
    waits up to stop_grace_ms for the current one, then releases the
    frame source.
    """

    def __init__(
        self,
        config: Config,
        source: FrameSource,
        pipeline: FacePipeline,
        tracker: FaceTracker,
        engine: Optional[AttendanceEngine] = None,
        annotate: Optional[Annotator] = None,
        gate: Optional[FrameGate] = None
    ):
        """
        Args:
            config: Service configuration
            source: Capture collaborator
            pipeline: Detection / embedding collaborator
            tracker: Track store updated every processed frame
            engine: Attendance engine (None = tracking only)
            annotate: Optional overlay for the processed-frame callbacks
            gate: Frame gating (built from config if omitted)
        """
        self.config = config
        self.source = source
        self.pipeline = pipeline
        self.tracker = tracker
        self.engine = engine
        self.annotate = annotate
        self.gate = gate or FrameGate(
            config.skip_frames,
            config.detection_interval_ms,
            config.recognition_interval_ms,
        )

        self.interval = config.frame_interval_ms / 1000.0
        self.stop_grace = config.stop_grace_ms / 1000.0

        self._frame_callbacks: List[FrameCallback] = []
        self._tracks_callbacks: List[TracksCallback] = []
        self._error_callbacks: List[ErrorCallback] = []

        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False

        self.started_at: Optional[float] = None
        self.processed_frames = 0

    # Callback registration

    def add_processed_frame_callback(self, callback: FrameCallback) -> None:
        self._frame_callbacks.append(callback)

    def add_tracked_faces_callback(self, callback: TracksCallback) -> None:
        self._tracks_callbacks.append(callback)

    def add_error_callback(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Open the frame source and start the driver thread.

        Raises:
            CaptureError: If the frame source cannot be opened
        """
        with self._state_lock:
            if self._running:
                logger.warning('Video processing already running')
                return

            logger.info(f'Starting video processing (frame interval {self.config.frame_interval_ms}ms)')
            self.source.open()

            # A driver left behind by a timed-out stop() keeps its own (set)
            # event; the new driver joins it before running any cycle.
            previous = self._thread
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, previous),
                daemon=True,
                name=f'FrameScheduler-{self.config.camera_id}'
            )
            self._running = True
            self.started_at = time.time()
            self._thread.start()

    def stop(self) -> None:
        """Stop the driver thread and release the frame source."""
        with self._state_lock:
            if not self._running:
                return

            logger.info('Stopping video processing')
            self._stop_event.set()

            thread = self._thread
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self.stop_grace)
                if thread.is_alive():
                    logger.warning(
                        f'Processing cycle still running after {self.config.stop_grace_ms}ms, '
                        f'releasing capture anyway'
                    )

            try:
                self.source.release()
            except Exception as e:
                logger.warning(f'Error releasing camera: {e}')

            if thread is not None and not thread.is_alive():
                thread = None
            self._thread = thread
            self._running = False
            logger.info('Camera released')

    def _run(
        self,
        stop_event: threading.Event,
        previous: Optional[threading.Thread] = None
    ) -> None:
        if previous is not None and previous.is_alive():
            logger.info('Waiting for the previous processing cycle to finish...')
            previous.join()
        self.gate.reset()

        logger.info('🎬 Starting main loop...')
        next_tick = time.monotonic()

        while not stop_event.is_set():
            self.run_cycle()

            next_tick += self.interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Overran the period; start the next cycle now without bursting
                next_tick = time.monotonic()
                delay = 0.0
            stop_event.wait(delay)

        logger.info('Main loop exited')

    def run_cycle(self) -> bool:
        """
        Execute one capture -> detect -> track -> decide cycle.

        Returns:
            True if the frame was processed and callbacks were invoked
        """
        try:
            frame = self.source.next_frame()
        except Exception as e:
            logger.warning(f'Failed to read frame: {e}')
            return False

        if frame is None:
            return False

        if not self.gate.admit():
            return False

        try:
            observations = self.pipeline.process(frame)
        except Exception as e:
            logger.error(f'Error processing frame {self.gate.frame_count}: {e}')
            self._notify_error(e)
            self._age_tracks()
            return False

        try:
            tracks = self.tracker.update(observations)

            if self.engine is not None and self.gate.recognition_due():
                self.engine.process_cycle(tracks, observations)

            snapshots = [t.snapshot(self.tracker.min_hits) for t in tracks]
            logger.debug(
                f'Processed frame {self.gate.frame_count}: '
                f'{len(observations)} faces, {len(snapshots)} tracks'
            )

            self._notify(self._tracks_callbacks, snapshots)
            if self._frame_callbacks:
                output = self.annotate(frame, snapshots) if self.annotate else frame
                self._notify(self._frame_callbacks, output)
        except Exception as e:
            logger.error(f'Error in processing cycle: {e}', exc_info=True)
            self._notify_error(e)
            return False

        self.processed_frames += 1
        return True

    def _age_tracks(self) -> None:
        """A failed detection still counts as an empty cycle for the tracker."""
        try:
            self.tracker.update([])
        except Exception as e:
            logger.error(f'Tracker update failed: {e}', exc_info=True)

    def _notify(self, callbacks: List[Callable[[Any], None]], payload: Any) -> None:
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                logger.error(f'Callback {callback!r} failed: {e}', exc_info=True)

    def _notify_error(self, error: Exception) -> None:
        for callback in self._error_callbacks:
            try:
                callback(error)
            except Exception as e:
                logger.error(f'Error callback failed: {e}', exc_info=True)
