"""
Frame overlay module.

Draws confirmed tracks on a copy of the frame: recognised faces in
green with the enrollee's name, unknown faces in red with the track id.
Unconfirmed tracks are not drawn.
"""

from typing import Sequence

import cv2
import numpy as np

from .models import BoundingBox
from .recognition.tracker import TrackSnapshot

GREEN = (0, 255, 0)
RED = (0, 0, 255)
WHITE = (255, 255, 255)


def draw_tracks(frame: np.ndarray, tracks: Sequence[TrackSnapshot]) -> np.ndarray:
    """
    Draw visualization on a copy of the frame.

    Args:
        frame: BGR frame
        tracks: Track snapshots from the current cycle

    Returns:
        Annotated copy of the frame
    """
    output = frame.copy()
    height, width = output.shape[:2]

    confirmed = [t for t in tracks if t.confirmed and isinstance(t.bbox, BoundingBox)]
    recognized = sum(1 for t in confirmed if t.recognized)

    status_text = f'Tracks: {len(confirmed)} | Recognized: {recognized}'
    # Draw status (with shadow)
    cv2.putText(output, status_text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
    cv2.putText(output, status_text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, GREEN, 2)

    for track in confirmed:
        x1, y1, x2, y2 = track.bbox.to_pixels(width, height)
        color = GREEN if track.recognized else RED

        cv2.rectangle(output, (x1, y1), (x2, y2), color, 3)
        cv2.rectangle(output, (x1, y2 - 30), (x2, y2), color, cv2.FILLED)
        cv2.putText(output, track.label, (x1 + 6, y2 - 8),
                    cv2.FONT_HERSHEY_DUPLEX, 0.5, WHITE, 1)

    return output
