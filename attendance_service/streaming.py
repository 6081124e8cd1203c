"""
Video streaming module.

Holds the latest annotated frame and generates an MJPEG stream from it
for the Flask API. Thread-safe frame access using a lock.
"""

import threading
import time
from typing import Generator, Optional

import cv2
import numpy as np


class FrameBuffer:
    """Latest-frame holder shared by the driver thread and HTTP clients."""

    def __init__(self, jpeg_quality: int = 85):
        self.jpeg_quality = jpeg_quality
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def set_frame(self, frame: Optional[np.ndarray]) -> None:
        """Replace the current frame (stores a copy)."""
        with self._lock:
            self._frame = frame.copy() if frame is not None else None

    def get_frame_copy(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame.copy() if self._frame is not None else None

    def is_streaming(self) -> bool:
        with self._lock:
            return self._frame is not None

    def encode_jpeg(self) -> Optional[bytes]:
        """Current frame as JPEG bytes, or None if there is none."""
        frame = self.get_frame_copy()
        if frame is None:
            return None
        ret, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        return buffer.tobytes() if ret else None

    def generate_mjpeg_frames(
        self,
        fps: float = 30.0,
        stop: Optional[threading.Event] = None
    ) -> Generator[bytes, None, None]:
        """
        Yield multipart JPEG chunks until ``stop`` is set.

        Yields:
            JPEG frame bytes with multipart headers
        """
        delay = 1.0 / fps
        while stop is None or not stop.is_set():
            jpeg = self.encode_jpeg()
            if jpeg is None:
                time.sleep(0.1)
                continue

            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + jpeg + b'\r\n')
            time.sleep(delay)
