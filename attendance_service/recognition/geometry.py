"""
Geometric matching module.

Distance between a detection and a track is 1 - IoU of their boxes.
"""

from typing import Any

from ..models import BoundingBox

# Returned when either box is not a usable axis-aligned rectangle
NO_MATCH_DISTANCE = 1.0


def compute_iou(box_a: BoundingBox, box_b: BoundingBox) -> float:
    """
    Compute Intersection over Union for two normalized bounding boxes.

    Args:
        box_a: First box (x, y, width, height)
        box_b: Second box (x, y, width, height)

    Returns:
        IoU value in range [0, 1]
    """
    inter_x_min = max(box_a.x, box_b.x)
    inter_y_min = max(box_a.y, box_b.y)
    inter_x_max = min(box_a.right, box_b.right)
    inter_y_max = min(box_a.bottom, box_b.bottom)

    inter_area = max(0.0, inter_x_max - inter_x_min) * max(0.0, inter_y_max - inter_y_min)
    union_area = box_a.area + box_b.area - inter_area

    if union_area <= 0:
        return 0.0

    return min(1.0, inter_area / union_area)


def iou_distance(box_a: Any, box_b: Any) -> float:
    """
    Distance between two boxes as 1 - IoU.

    Never raises: if either argument is not a valid BoundingBox the
    pair is reported as NO_MATCH_DISTANCE.

    Args:
        box_a: Detection box
        box_b: Track box

    Returns:
        Distance in range [0, 1]
    """
    if not isinstance(box_a, BoundingBox) or not isinstance(box_b, BoundingBox):
        return NO_MATCH_DISTANCE
    if not box_a.is_valid() or not box_b.is_valid():
        return NO_MATCH_DISTANCE
    return 1.0 - compute_iou(box_a, box_b)
