"""
Data types shared across the service.

Bounding boxes are normalized to the frame: x, y, width and height all
lie in [0, 1], with (x, y) the top-left corner.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time
from typing import Any, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in normalized frame coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        """True if all coordinates are finite and the size is non-negative."""
        try:
            values = [float(v) for v in (self.x, self.y, self.width, self.height)]
        except (TypeError, ValueError):
            return False
        if not all(math.isfinite(v) for v in values):
            return False
        return values[2] >= 0 and values[3] >= 0

    def to_pixels(self, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
        """
        Convert to pixel corners.

        Args:
            frame_width: Frame width in pixels
            frame_height: Frame height in pixels

        Returns:
            Tuple (x1, y1, x2, y2) clamped to the frame
        """
        x1 = int(round(max(0.0, self.x) * frame_width))
        y1 = int(round(max(0.0, self.y) * frame_height))
        x2 = int(round(min(1.0, self.right) * frame_width))
        y2 = int(round(min(1.0, self.bottom) * frame_height))
        return x1, y1, x2, y2

    @classmethod
    def from_corners(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        frame_width: int,
        frame_height: int
    ) -> 'BoundingBox':
        """
        Build a normalized box from pixel corners [x1, y1, x2, y2].

        Args:
            x1, y1, x2, y2: Pixel coordinates as returned by detectors
            frame_width: Frame width in pixels
            frame_height: Frame height in pixels

        Returns:
            Normalized BoundingBox
        """
        return cls(
            x=float(x1) / frame_width,
            y=float(y1) / frame_height,
            width=float(x2 - x1) / frame_width,
            height=float(y2 - y1) / frame_height,
        )


@dataclass
class FaceObservation:
    """
    One detected face in one frame, as produced by the face pipeline.

    ``bbox`` is normally a BoundingBox; anything else is treated as a
    non-rectangular region and never associates with a track.
    ``landmarks`` is set only by pipelines that produce keypoints.
    """

    bbox: Any
    embedding: Optional[np.ndarray] = None
    confidence: float = 0.0
    landmarks: Optional[np.ndarray] = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and np.size(self.embedding) > 0


@dataclass(frozen=True)
class MatchResult:
    """Best enrollee match for an embedding (similarity is raw cosine)."""

    enrollee_id: Any
    similarity: float


@dataclass(frozen=True)
class AttendanceRecord:
    """A single append-only 'present' record."""

    enrollee_id: Any
    class_date: date
    entry_time: dt_time
    scope_id: Optional[str] = None
    status: str = 'Present'

    @classmethod
    def at(cls, enrollee_id: Any, timestamp: datetime, scope_id: Optional[str] = None) -> 'AttendanceRecord':
        return cls(
            enrollee_id=enrollee_id,
            class_date=timestamp.date(),
            entry_time=timestamp.time().replace(microsecond=0),
            scope_id=scope_id,
        )

    def to_payload(self) -> dict:
        """JSON body for the backend attendance API."""
        return {
            'studentId': self.enrollee_id,
            'courseId': self.scope_id,
            'classDate': self.class_date.isoformat(),
            'entryTime': self.entry_time.isoformat(),
            'status': self.status,
        }


@dataclass
class Enrollee:
    """Enrolled person with one or more reference embeddings."""

    enrollee_id: Any
    display_name: Optional[str] = None
    embeddings: list = field(default_factory=list)
