"""Bounding-box normalization, padding, and face region extraction.

Every box returned here is integral and lies inside the image:
``0 <= x``, ``x + width <= image_width``, ``width >= 1`` (same for y).
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from skintonex.engine.types import BoundingBox, InvalidImageError, LandmarkSet, Point, RawImageBuffer, finite_or
from skintonex.schemas import FaceRegion

if TYPE_CHECKING:
    from skintonex.engine.types import DetectedFace

DEFAULT_PADDING_RATIO = 0.2


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def normalize_bounding_box(box: BoundingBox, image_width: int, image_height: int) -> BoundingBox:
    """Snap a detector box to whole pixels and clamp it to the image.

    The corner is floored and the size ceiled, then the box is intersected
    with the image. A box that misses the image entirely collapses to the
    nearest 1x1 pixel.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    if image_width <= 0 or image_height <= 0:
        raise InvalidImageError(f"Cannot place a box in a {image_width}x{image_height} image")

    x = math.floor(finite_or(box.x, 0.0))
    y = math.floor(finite_or(box.y, 0.0))
    width = math.ceil(finite_or(box.width, 1.0))
    height = math.ceil(finite_or(box.height, 1.0))

    left = _clamp(x, 0, image_width - 1)
    top = _clamp(y, 0, image_height - 1)
    right = _clamp(x + width, left + 1, image_width)
    bottom = _clamp(y + height, top + 1, image_height)
    return BoundingBox(x=left, y=top, width=right - left, height=bottom - top)


def get_padded_bounding_box(
    box: BoundingBox,
    image_width: int,
    image_height: int,
    padding_ratio: float = DEFAULT_PADDING_RATIO,
) -> BoundingBox:
    """Grow ``box`` by ``padding_ratio`` of its size on every side, then clamp."""
    base = normalize_bounding_box(box, image_width, image_height)
    pad_x = round(base.width * padding_ratio)
    pad_y = round(base.height * padding_ratio)
    padded = BoundingBox(
        x=base.x - pad_x,
        y=base.y - pad_y,
        width=base.width + 2 * pad_x,
        height=base.height + 2 * pad_y,
    )
    return normalize_bounding_box(padded, image_width, image_height)


def get_square_bounding_box(
    box: BoundingBox,
    image_width: int,
    image_height: int,
    padding_ratio: float = DEFAULT_PADDING_RATIO,
) -> BoundingBox:
    """Square box centered on ``box`` with side ``max(width, height)``, padded and clamped.

    Clamping at the image border can make the result non-square.
    """
    base = normalize_bounding_box(box, image_width, image_height)
    side = max(base.width, base.height)
    square = BoundingBox(
        x=base.x + (base.width - side) // 2,
        y=base.y + (base.height - side) // 2,
        width=side,
        height=side,
    )
    return get_padded_bounding_box(square, image_width, image_height, padding_ratio)


def extract_region_from_image(image: RawImageBuffer, box: BoundingBox) -> RawImageBuffer:
    """Copy the pixels under ``box`` (normalized first) into a new buffer."""
    region = normalize_bounding_box(box, image.width, image.height)
    x, y = int(region.x), int(region.y)
    return RawImageBuffer(image.pixels[y : y + int(region.height), x : x + int(region.width)])


# ---------------------------------------------------------------------------
# Coordinate frames
# ---------------------------------------------------------------------------


def translate_point(point: Point, dx: float, dy: float) -> Point:
    return Point(x=point.x + dx, y=point.y + dy, z=point.z)


def translate_landmarks(landmarks: LandmarkSet, box: BoundingBox) -> LandmarkSet:
    """Move landmarks into the frame whose origin is the top-left of ``box``."""
    return LandmarkSet(
        points=tuple(translate_point(p, -box.x, -box.y) for p in landmarks.points),
        confidence=landmarks.confidence,
    )


# ---------------------------------------------------------------------------
# Face regions
# ---------------------------------------------------------------------------


def _build_region(image: RawImageBuffer, face: DetectedFace, box: BoundingBox) -> FaceRegion:
    return FaceRegion(
        image_data=extract_region_from_image(image, box),
        bounding_box=box,
        landmarks=translate_landmarks(face.landmarks, box) if face.landmarks is not None else None,
    )


def extract_face_region(
    image: RawImageBuffer,
    face: DetectedFace,
    padding_ratio: float = DEFAULT_PADDING_RATIO,
) -> FaceRegion:
    """Crop the padded face box and remap its landmarks into the crop.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    box = get_padded_bounding_box(face.bounding_box, image.width, image.height, padding_ratio)
    return _build_region(image, face, box)


def extract_square_face_region(
    image: RawImageBuffer,
    face: DetectedFace,
    padding_ratio: float = DEFAULT_PADDING_RATIO,
) -> FaceRegion:
    """Like ``extract_face_region`` but with a square crop for fixed-aspect consumers.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    box = get_square_bounding_box(face.bounding_box, image.width, image.height, padding_ratio)
    return _build_region(image, face, box)
