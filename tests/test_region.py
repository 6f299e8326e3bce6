"""Tests for face region extraction."""

from __future__ import annotations

import math
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from skintonex.engine.constants import RegionConfig
from skintonex.engine.region.extractor import (
    extract_face_region,
    extract_region_from_image,
    extract_square_face_region,
    get_padded_bounding_box,
    get_square_bounding_box,
    normalize_bounding_box,
    translate_landmarks,
)
from skintonex.engine.region.fallback import (
    generate_no_face_fallback,
    generate_region_error_fallback,
    generate_region_fallback,
)
from skintonex.engine.region.frontality import assess_frontality, calculate_frontality_score
from skintonex.engine.region.processor import process_face_region
from skintonex.engine.types import (
    BoundingBox,
    DegradedReason,
    DetectedFace,
    FaceAngle,
    InvalidImageError,
    LandmarkSet,
    Point,
    RawImageBuffer,
    ResultSource,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_image(width: int = 640, height: int = 480) -> RawImageBuffer:
    yy, xx = np.indices((height, width))
    pixels = np.stack([xx % 256, yy % 256, np.full_like(xx, 128)], axis=2).astype(np.uint8)
    return RawImageBuffer(pixels)


def _make_face(
    box: BoundingBox | None = None,
    confidence: float = 0.9,
    angle: FaceAngle | None = None,
) -> DetectedFace:
    return DetectedFace(
        bounding_box=box or BoundingBox(100, 100, 100, 100),
        confidence=confidence,
        landmarks=LandmarkSet(points=(Point(150.0, 150.0, 0.5), Point(120.0, 130.0)), confidence=0.95),
        angle=angle,
    )


def _assert_inside(box: BoundingBox, width: int, height: int) -> None:
    assert box.x >= 0 and box.y >= 0
    assert box.width >= 1 and box.height >= 1
    assert box.x + box.width <= width
    assert box.y + box.height <= height


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------


class TestBoundingBoxes:
    def test_padding_example(self) -> None:
        padded = get_padded_bounding_box(BoundingBox(100, 100, 100, 100), 640, 480, 0.2)
        assert padded == BoundingBox(80, 80, 140, 140)

    def test_zero_padding_is_identity(self) -> None:
        box = BoundingBox(100, 100, 100, 100)
        assert get_padded_bounding_box(box, 640, 480, 0.0) == box

    def test_fractional_box_snaps_outward(self) -> None:
        box = normalize_bounding_box(BoundingBox(10.7, 20.2, 30.1, 40.9), 640, 480)
        assert box == BoundingBox(10, 20, 31, 41)

    def test_partially_outside_box_is_clipped(self) -> None:
        assert normalize_bounding_box(BoundingBox(-50, -50, 100, 100), 640, 480) == BoundingBox(0, 0, 50, 50)
        assert normalize_bounding_box(BoundingBox(600, 450, 100, 100), 640, 480) == BoundingBox(600, 450, 40, 30)

    def test_box_outside_image_collapses_to_one_pixel(self) -> None:
        assert normalize_bounding_box(BoundingBox(1000, 1000, 10, 10), 640, 480) == BoundingBox(639, 479, 1, 1)

    def test_degenerate_box_has_minimum_size(self) -> None:
        box = normalize_bounding_box(BoundingBox(5, 5, 0, -3), 640, 480)
        assert box.width == 1
        assert box.height == 1

    def test_non_finite_box_is_contained(self) -> None:
        box = normalize_bounding_box(BoundingBox(math.nan, math.inf, math.nan, 10), 640, 480)
        _assert_inside(box, 640, 480)

    @pytest.mark.parametrize(
        "box",
        [
            BoundingBox(0, 0, 640, 480),
            BoundingBox(-1e6, -1e6, 2e6, 2e6),
            BoundingBox(639.9, 479.9, 0.01, 0.01),
            BoundingBox(320, 240, 1000, 5),
            BoundingBox(-10, 470, 5, 100),
        ],
    )
    def test_padded_boxes_stay_inside(self, box: BoundingBox) -> None:
        for ratio in (0.0, 0.2, 1.5):
            _assert_inside(get_padded_bounding_box(box, 640, 480, ratio), 640, 480)
            _assert_inside(get_square_bounding_box(box, 640, 480, ratio), 640, 480)

    def test_one_pixel_image(self) -> None:
        assert get_padded_bounding_box(BoundingBox(0, 0, 1, 1), 1, 1) == BoundingBox(0, 0, 1, 1)

    def test_empty_image_raises(self) -> None:
        with pytest.raises(InvalidImageError):
            normalize_bounding_box(BoundingBox(0, 0, 1, 1), 0, 0)

    def test_square_box_is_centered(self) -> None:
        assert get_square_bounding_box(BoundingBox(100, 100, 100, 50), 640, 480, 0.0) == BoundingBox(100, 75, 100, 100)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtraction:
    def test_crop_copies_pixels(self) -> None:
        image = _make_image()
        crop = extract_region_from_image(image, BoundingBox(10, 20, 30, 40))
        assert (crop.width, crop.height) == (30, 40)
        assert np.array_equal(crop.pixels, image.pixels[20:60, 10:40])

    def test_one_pixel_crop(self) -> None:
        crop = extract_region_from_image(_make_image(), BoundingBox(639, 479, 1, 1))
        assert len(crop) == 3

    def test_square_crop(self) -> None:
        region = extract_square_face_region(_make_image(), _make_face(BoundingBox(100, 100, 100, 50)))
        assert region.bounding_box == BoundingBox(80, 55, 140, 140)
        assert (region.width, region.height) == (140, 140)

    def test_landmarks_move_into_crop_frame(self) -> None:
        region = extract_face_region(_make_image(), _make_face())
        assert region.bounding_box == BoundingBox(80, 80, 140, 140)
        assert region.landmarks is not None
        assert region.landmarks.points[0] == Point(70.0, 70.0, 0.5)
        assert region.landmarks.confidence == 0.95
        assert (region.width, region.height) == (140, 140)

    def test_translate_landmarks(self) -> None:
        landmarks = LandmarkSet(points=(Point(5.0, 7.0),), confidence=1.0)
        moved = translate_landmarks(landmarks, BoundingBox(2, 3, 10, 10))
        assert moved.points == (Point(3.0, 4.0),)


# ---------------------------------------------------------------------------
# Frontality
# ---------------------------------------------------------------------------


class TestFrontality:
    def test_frontal_face_scores_full(self) -> None:
        result = assess_frontality(FaceAngle(0.0, 0.0, 0.0))
        assert result.score == 100.0
        assert result.is_frontal is True

    def test_yaw_at_threshold_costs_half(self) -> None:
        assert calculate_frontality_score(FaceAngle(0.0, 15.0, 0.0)) == pytest.approx(50.0)

    def test_turned_face_is_not_frontal(self) -> None:
        result = assess_frontality(FaceAngle(0.0, 30.0, 0.0))
        assert result.is_frontal is False
        assert "face the camera" in result.feedback


# ---------------------------------------------------------------------------
# Stage entry
# ---------------------------------------------------------------------------


class TestProcessFaceRegion:
    def test_success(self) -> None:
        result = process_face_region(_make_image(), _make_face())
        assert result.success is True
        assert result.face_detected is True
        assert result.region is not None
        assert result.confidence == pytest.approx(0.9)
        assert result.source == ResultSource.MEASURED

    def test_pose_reduces_confidence(self) -> None:
        result = process_face_region(_make_image(), _make_face(angle=FaceAngle(0.0, 15.0, 0.0)))
        assert result.frontality is not None
        assert result.confidence == pytest.approx(0.9 * 0.75)

    def test_low_detector_confidence_adds_feedback(self) -> None:
        result = process_face_region(_make_image(), _make_face(confidence=0.3))
        assert result.feedback is not None
        assert "reliably" in result.feedback

    def test_square_config(self) -> None:
        result = process_face_region(
            _make_image(),
            _make_face(BoundingBox(100, 100, 100, 50)),
            RegionConfig(square=True, padding_ratio=0.0),
        )
        assert result.region is not None
        assert result.region.bounding_box == BoundingBox(100, 75, 100, 100)

    def test_no_face(self) -> None:
        result = process_face_region(_make_image(), None)
        assert result.success is True
        assert result.face_detected is False
        assert result.confidence <= 0.1

    def test_empty_image(self) -> None:
        result = process_face_region(RawImageBuffer.empty(), _make_face())
        assert result.success is False
        assert result.degraded_reason == DegradedReason.ERROR

    @patch("skintonex.engine.region.processor.extract_face_region")
    def test_extraction_failure_returns_error_fallback(self, mock_extract: MagicMock) -> None:
        mock_extract.side_effect = RuntimeError("crop failed")
        result = process_face_region(_make_image(), _make_face())
        assert result.success is False
        assert result.feedback == "crop failed"
        assert result.confidence <= 0.1


class TestRegionFallbacks:
    def test_whole_stage_fallback(self) -> None:
        result = generate_region_fallback(reason=DegradedReason.TIMEOUT)
        assert result.confidence <= 0.5
        assert result.region is None
        assert result.is_degraded is True

    def test_no_face_fallback(self) -> None:
        result = generate_no_face_fallback()
        assert result.degraded_reason == DegradedReason.INSUFFICIENT_EVIDENCE

    def test_error_fallback(self) -> None:
        result = generate_region_error_fallback("bad box")
        assert result.success is False
        assert result.confidence <= 0.1
        assert result.source == ResultSource.REJECTED
