"""Face detector boundary.

Detection and landmarking are external. Any model wrapper that satisfies
``FaceDetector`` can feed the region stage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from skintonex.engine.types import DetectedFace, RawImageBuffer


class FaceDetector(Protocol):
    """Protocol for face detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def detect(self, image: RawImageBuffer) -> list[DetectedFace]:
        """Detect faces in an image.

        Args:
            image: RGB image buffer.

        Returns:
            Detections in image pixel coordinates, with confidence in [0, 1]
            and optional landmarks and head angle.
        """
        ...


def select_primary_face(faces: list[DetectedFace]) -> DetectedFace | None:
    """Highest-confidence detection; ties go to the larger box."""
    if not faces:
        return None
    return max(faces, key=lambda face: (face.confidence, face.bounding_box.width * face.bounding_box.height))
