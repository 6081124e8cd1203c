"""
InsightFace pipeline module.

Wraps InsightFace FaceAnalysis as the face pipeline for the scheduler:
one FaceObservation per detected face, with the bounding box
normalized to the frame and the L2-normalized embedding.
"""

from typing import List, Tuple

import numpy as np
from insightface.app import FaceAnalysis

from .errors import PipelineError
from .logging_config import get_logger
from .models import BoundingBox, FaceObservation

logger = get_logger(__name__)


def initialize_face_app(det_size: Tuple[int, int] = (640, 640)) -> FaceAnalysis:
    """
    Initialize InsightFace FaceAnalysis.

    Args:
        det_size: Detection input size (width, height)

    Returns:
        Initialized FaceAnalysis instance
    """
    logger.info('Initializing InsightFace AI...')

    face_app = FaceAnalysis(providers=['CPUExecutionProvider'])
    face_app.prepare(ctx_id=0, det_size=det_size)

    logger.info(f'✅ InsightFace initialized (det_size={det_size})')

    return face_app


class InsightFacePipeline:
    """Face pipeline backed by an InsightFace FaceAnalysis instance."""

    def __init__(self, face_app: FaceAnalysis):
        self.face_app = face_app

    def process(self, frame: np.ndarray) -> List[FaceObservation]:
        """
        Detect faces and extract embeddings.

        Args:
            frame: BGR frame

        Returns:
            One observation per detected face

        Raises:
            PipelineError: If InsightFace fails on the frame
        """
        height, width = frame.shape[:2]
        try:
            faces = self.face_app.get(frame)
        except Exception as e:
            raise PipelineError(f'Face analysis failed: {e}') from e

        observations = []
        for face in faces:
            x1, y1, x2, y2 = (float(v) for v in face.bbox)
            embedding = getattr(face, 'normed_embedding', None)
            observations.append(FaceObservation(
                bbox=BoundingBox.from_corners(x1, y1, x2, y2, width, height),
                embedding=np.asarray(embedding, dtype=np.float32) if embedding is not None else None,
                confidence=float(face.det_score),
                landmarks=getattr(face, 'kps', None),
            ))
        return observations
