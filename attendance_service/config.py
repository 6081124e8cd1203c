"""
Configuration module for Attendance Service.

Loads configuration from a key/value properties mapping, environment
variables and sensible defaults (in that order of precedence).
All settings are immutable after initialization and validated eagerly:
an invalid value fails at startup with a ConfigError naming the key.
"""

import os
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigError


ATTENDANCE_SOURCES = ('tracks', 'observations')


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for Attendance Service.

    Tracking:
        tracking_enabled: Associate detections across frames (False = every
            detection becomes a new unconfirmed track each cycle)
        tracking_max_distance: Maximum 1 - IoU distance for association
        tracking_max_age: Cycles a track may go unmatched before eviction
        tracking_min_hits: Associations required before a track is confirmed

    Recognition:
        recognition_threshold: Minimum raw cosine similarity in [-1, 1]

    Attendance:
        attendance_min_recognitions: Cumulative matches before marking present
        attendance_source: 'tracks' (confirmed, updated tracks) or
            'observations' (every raw detection)

    Processing:
        frame_interval_ms: Scheduler tick period
        skip_frames: Frames skipped between processed frames
        detection_interval_ms: Minimum gap between pipeline calls
        recognition_interval_ms: Minimum gap between attendance decisions
        stop_grace_ms: How long stop() waits for an in-flight cycle

    Collaborators:
        camera_source: Camera index, RTSP or HTTP URL
        camera_id: Logical identifier for this camera (for logging)
        backend_url: Base URL of the enrollment / attendance backend
        session_scope: Scope (course) of the first session, if any
        enrollment_cache_file: Pickle fallback for enrollment data

    System:
        service_port: Port for the Flask monitoring API
        debug_mode: Enable debug logging
    """

    # Tracking
    tracking_enabled: bool
    tracking_max_distance: float
    tracking_max_age: int
    tracking_min_hits: int

    # Recognition
    recognition_threshold: float

    # Attendance
    attendance_min_recognitions: int
    attendance_source: str

    # Processing
    frame_interval_ms: int
    skip_frames: int
    detection_interval_ms: int
    recognition_interval_ms: int
    stop_grace_ms: int

    # Collaborators
    camera_source: str
    camera_id: str
    backend_url: str
    session_scope: Optional[str]
    enrollment_cache_file: str

    # System
    service_port: int
    debug_mode: bool


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ('true', '1', 'yes', 'on'):
        return True
    if value in ('false', '0', 'no', 'off'):
        return False
    raise ValueError(f'not a boolean: {raw!r}')


def _parse_optional(raw: str) -> Optional[str]:
    value = raw.strip()
    return value or None


# property key -> (environment variable, default, parser)
_SETTINGS: Dict[str, Tuple[str, str, Callable[[str], object]]] = {
    'tracking.enabled': ('TRACKING_ENABLED', 'true', _parse_bool),
    'tracking.maxDistance': ('TRACKING_MAX_DISTANCE', '0.3', float),
    'tracking.maxAge': ('TRACKING_MAX_AGE', '10', int),
    'tracking.minHits': ('TRACKING_MIN_HITS', '3', int),
    'recognition.threshold': ('RECOGNITION_THRESHOLD', '0.7', float),
    'attendance.minRecognitions': ('ATTENDANCE_MIN_RECOGNITIONS', '5', int),
    'attendance.source': ('ATTENDANCE_SOURCE', 'tracks', str),
    'processing.frameIntervalMs': ('FRAME_INTERVAL_MS', '100', int),
    'processing.skipFrames': ('SKIP_FRAMES', '2', int),
    'processing.detectionIntervalMs': ('DETECTION_INTERVAL_MS', '500', int),
    'processing.recognitionIntervalMs': ('RECOGNITION_INTERVAL_MS', '1000', int),
    'processing.stopGraceMs': ('STOP_GRACE_MS', '1000', int),
    'camera.source': ('CAMERA_SOURCE', '0', str),
    'camera.id': ('CAMERA_ID', '', str),
    'backend.url': ('BACKEND_URL', 'http://localhost:3000', str),
    'session.scope': ('SESSION_SCOPE', '', _parse_optional),
    'enrollment.cacheFile': ('ENROLLMENT_CACHE_FILE', 'enrollment_cache.pkl', str),
    'service.port': ('SERVICE_PORT', '5001', int),
    'debug': ('DEBUG', 'false', _parse_bool),
}


def _resolve(key: str, properties: Mapping[str, str]) -> object:
    env_name, default, parser = _SETTINGS[key]
    raw = properties.get(key)
    if raw is None:
        raw = os.getenv(env_name, default)
    try:
        return parser(str(raw))
    except ValueError as e:
        raise ConfigError(f'Invalid value for {key} ({env_name}): {raw!r} ({e})') from e


def _validate(config: Config) -> None:
    """Reject values that parse but make no sense."""
    if not 0.0 <= config.tracking_max_distance <= 1.0:
        raise ConfigError(
            f'tracking.maxDistance must be in [0, 1], got {config.tracking_max_distance}'
        )
    if config.tracking_max_age < 0:
        raise ConfigError(f'tracking.maxAge must be >= 0, got {config.tracking_max_age}')
    if config.tracking_min_hits < 1:
        raise ConfigError(f'tracking.minHits must be >= 1, got {config.tracking_min_hits}')
    if not -1.0 <= config.recognition_threshold <= 1.0:
        raise ConfigError(
            f'recognition.threshold must be a cosine similarity in [-1, 1], '
            f'got {config.recognition_threshold}'
        )
    if config.attendance_min_recognitions < 1:
        raise ConfigError(
            f'attendance.minRecognitions must be >= 1, got {config.attendance_min_recognitions}'
        )
    if config.attendance_source not in ATTENDANCE_SOURCES:
        raise ConfigError(
            f'attendance.source must be one of {ATTENDANCE_SOURCES}, '
            f'got {config.attendance_source!r}'
        )
    if config.frame_interval_ms <= 0:
        raise ConfigError(
            f'processing.frameIntervalMs must be > 0, got {config.frame_interval_ms}'
        )
    for key, value in (
        ('processing.skipFrames', config.skip_frames),
        ('processing.detectionIntervalMs', config.detection_interval_ms),
        ('processing.recognitionIntervalMs', config.recognition_interval_ms),
        ('processing.stopGraceMs', config.stop_grace_ms),
    ):
        if value < 0:
            raise ConfigError(f'{key} must be >= 0, got {value}')
    if not 0 < config.service_port < 65536:
        raise ConfigError(f'service.port out of range: {config.service_port}')


def load_config(properties: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load configuration from properties, environment variables and defaults.

    Args:
        properties: Optional mapping of dotted keys (e.g. 'tracking.maxAge')
            to raw string values; takes precedence over the environment

    Returns:
        Config: Immutable configuration object

    Raises:
        ConfigError: If any value cannot be parsed or is out of range
    """
    props = properties or {}
    unknown = sorted(set(props) - set(_SETTINGS))
    if unknown:
        raise ConfigError(f'Unknown configuration keys: {", ".join(unknown)}')

    camera_source = _resolve('camera.source', props)

    config = Config(
        # Tracking
        tracking_enabled=_resolve('tracking.enabled', props),
        tracking_max_distance=_resolve('tracking.maxDistance', props),
        tracking_max_age=_resolve('tracking.maxAge', props),
        tracking_min_hits=_resolve('tracking.minHits', props),

        # Recognition
        recognition_threshold=_resolve('recognition.threshold', props),

        # Attendance
        attendance_min_recognitions=_resolve('attendance.minRecognitions', props),
        attendance_source=_resolve('attendance.source', props),

        # Processing
        frame_interval_ms=_resolve('processing.frameIntervalMs', props),
        skip_frames=_resolve('processing.skipFrames', props),
        detection_interval_ms=_resolve('processing.detectionIntervalMs', props),
        recognition_interval_ms=_resolve('processing.recognitionIntervalMs', props),
        stop_grace_ms=_resolve('processing.stopGraceMs', props),

        # Collaborators
        camera_source=camera_source,
        camera_id=_resolve('camera.id', props) or camera_source,
        backend_url=_resolve('backend.url', props),
        session_scope=_resolve('session.scope', props),
        enrollment_cache_file=_resolve('enrollment.cacheFile', props),

        # System
        service_port=_resolve('service.port', props),
        debug_mode=_resolve('debug', props),
    )
    _validate(config)
    return config


def load_properties_file(path: str) -> Dict[str, str]:
    """
    Read a ``key=value`` properties file.

    Blank lines and lines starting with '#' are ignored.

    Args:
        path: Path to the properties file

    Returns:
        Mapping of keys to raw string values

    Raises:
        ConfigError: If the file cannot be read or a line has no '='
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise ConfigError(f'Cannot read properties file {path}: {e}') from e

    properties: Dict[str, str] = {}
    for number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' not in line:
            raise ConfigError(f'{path}:{number}: expected key=value, got {line!r}')
        key, value = line.split('=', 1)
        properties[key.strip()] = value.strip()
    return properties
