"""
Camera connection and management module.

Handles connection to various camera sources:
- Local webcams (index 0, 1, 2)
- RTSP streams
- HTTP streams

Wraps cv2.VideoCapture as a frame source for the scheduler, with
connection retries, reconnection after repeated read failures and
low-latency buffer handling for RTSP.
"""

import time
from typing import Optional, Union

import cv2
import numpy as np

from .config import Config
from .errors import CaptureError
from .logging_config import get_logger

logger = get_logger(__name__)


def _parse_source(camera_source: str) -> Union[int, str]:
    """Camera index for numeric sources, URL otherwise."""
    try:
        return int(camera_source)
    except ValueError:
        return camera_source


def is_rtsp_stream(camera_source: str) -> bool:
    return camera_source.startswith('rtsp://')


def _open_capture(source: Union[int, str], low_latency: bool) -> Optional[cv2.VideoCapture]:
    """
    Open a capture once and prove it delivers frames.

    Returns:
        Opened VideoCapture, or None (the capture is released)
    """
    capture = cv2.VideoCapture(source)
    if low_latency:
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

    if not capture.isOpened():
        logger.warning('VideoCapture did not open')
        capture.release()
        return None

    ok, first_frame = capture.read()
    if not ok or first_frame is None:
        logger.warning('VideoCapture opened but returned no frame')
        capture.release()
        return None

    logger.info(f'Frame size: {first_frame.shape[1]}x{first_frame.shape[0]}')
    if low_latency:
        # Drop whatever the stream buffered while we were connecting
        for _ in range(5):
            capture.grab()
    return capture


def connect_camera(config: Config, max_retries: int = 5) -> cv2.VideoCapture:
    """
    Open the configured camera, retrying with exponential backoff.

    Args:
        config: Service configuration
        max_retries: Maximum connection attempts

    Returns:
        Opened VideoCapture object

    Raises:
        CaptureError: If every attempt fails
    """
    source = _parse_source(config.camera_source)
    low_latency = is_rtsp_stream(config.camera_source)
    described = f'index {source}' if isinstance(source, int) else _sanitize_url(source)

    delay = 1
    for attempt in range(1, max_retries + 1):
        logger.info(f'Opening camera {described} ({attempt}/{max_retries})...')
        capture = _open_capture(source, low_latency)
        if capture is not None:
            logger.info(f'✅ Camera {described} connected')
            return capture

        if attempt < max_retries:
            logger.info(f'Next attempt in {delay}s')
            time.sleep(delay)
            delay *= 2

    raise CaptureError(f'Cannot open camera {described} after {max_retries} attempts')


def _sanitize_url(url: str) -> str:
    """
    Remove password from URL for logging.

    Args:
        url: URL with potential password

    Returns:
        Sanitized URL
    """
    if '://' not in url:
        return url

    protocol, rest = url.split('://', 1)
    if '@' not in rest:
        return url

    creds, host = rest.rsplit('@', 1)
    username = creds.split(':', 1)[0]
    return f'{protocol}://{username}@{host}'


class OpenCVCapture:
    """
    Frame source backed by cv2.VideoCapture.

    After max_failures consecutive failed reads the camera is released
    and reopened on the next call.
    """

    def __init__(self, config: Config, max_retries: int = 5, max_failures: int = 10):
        """
        Args:
            config: Service configuration (camera_source is used)
            max_retries: Connection attempts when opening
            max_failures: Consecutive failed reads before reconnecting
        """
        self.config = config
        self.max_retries = max_retries
        self.max_failures = max_failures
        self._capture: Optional[cv2.VideoCapture] = None
        self._consecutive_failures = 0

    def open(self) -> None:
        """
        Raises:
            CaptureError: If the camera cannot be opened
        """
        if self._capture is not None:
            return
        self._capture = connect_camera(self.config, self.max_retries)
        self._consecutive_failures = 0

    def next_frame(self) -> Optional[np.ndarray]:
        """
        Read the next BGR frame.

        Returns:
            Frame, or None if the read failed

        Raises:
            CaptureError: If a reconnect attempt fails
        """
        if self._capture is None:
            logger.info('Camera not connected, reconnecting...')
            self._capture = connect_camera(self.config, max_retries=1)
            self._consecutive_failures = 0

        if is_rtsp_stream(self.config.camera_source):
            # Skip one buffered frame so we stay close to live
            self._capture.grab()

        ret, frame = self._capture.read()
        if not ret or frame is None:
            self._consecutive_failures += 1
            logger.warning(f'Failed to read frame ({self._consecutive_failures}/{self.max_failures})')

            if self._consecutive_failures >= self.max_failures:
                logger.error(f'Too many failures ({self._consecutive_failures}), reconnecting...')
                self.release()
            return None

        self._consecutive_failures = 0
        return frame

    def release(self) -> None:
        if self._capture is None:
            return
        try:
            self._capture.release()
        finally:
            self._capture = None
