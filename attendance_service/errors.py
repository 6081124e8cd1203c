"""
Exception types for Attendance Service.
"""


class AttendanceServiceError(Exception):
    """Base class for all service errors."""


class ConfigError(AttendanceServiceError, ValueError):
    """Invalid static configuration. Raised at startup, never mid-session."""


class CaptureError(AttendanceServiceError):
    """Camera could not be opened or stopped delivering frames."""


class PipelineError(AttendanceServiceError):
    """Face detection / embedding extraction failed for a frame."""


class EnrollmentError(AttendanceServiceError):
    """Enrollment data could not be loaded from the backend or the cache."""
