"""Tests for the image quality gate."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from skintonex.engine.quality.color_temperature import (
    analyze_color_temperature,
    calculate_cct_confidence,
    calculate_cct_from_chromaticity,
    calculate_cct_from_rgb,
    classify_cct,
)
from skintonex.engine.quality.exposure import analyze_exposure, classify_exposure
from skintonex.engine.quality.fallback import (
    generate_partial_quality_fallback,
    generate_quality_fallback,
    generate_random_quality_mock,
    generate_rejected_quality_fallback,
)
from skintonex.engine.quality.resolution import check_resolution
from skintonex.engine.quality.sharpness import analyze_sharpness, calculate_laplacian_variance, classify_sharpness
from skintonex.engine.quality.validator import (
    EMPTY_IMAGE_REASON,
    assess_image_quality,
    calculate_overall_score,
)
from skintonex.engine.types import (
    RGB,
    CCTVerdict,
    Chromaticity,
    DegradedReason,
    ExposureVerdict,
    InvalidImageError,
    RawImageBuffer,
    ResultSource,
    SharpnessVerdict,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_checkerboard(width: int = 640, height: int = 480, low: int = 0, high: int = 255) -> RawImageBuffer:
    yy, xx = np.indices((height, width))
    values = np.where((xx + yy) % 2 == 0, high, low).astype(np.uint8)
    return RawImageBuffer(np.repeat(values[:, :, None], 3, axis=2))


def _make_uniform(color: tuple[int, int, int], width: int = 640, height: int = 480) -> RawImageBuffer:
    return RawImageBuffer.filled(width, height, color)


# ---------------------------------------------------------------------------
# Sharpness
# ---------------------------------------------------------------------------


class TestSharpness:
    def test_flat_image_has_zero_variance(self) -> None:
        assert calculate_laplacian_variance(np.full((10, 10), 128.0)) == 0.0

    def test_tiny_image_has_zero_variance(self) -> None:
        assert calculate_laplacian_variance(np.array([[0.0, 255.0], [255.0, 0.0]])) == 0.0

    def test_single_bright_pixel(self) -> None:
        gray = np.zeros((5, 5))
        gray[2, 2] = 255.0
        # Interior responses: -1020 at the pixel, 255 at its four neighbours, 0 at the corners
        assert calculate_laplacian_variance(gray) == pytest.approx((1020.0**2 + 4 * 255.0**2) / 9)

    def test_checkerboard_is_sharp(self) -> None:
        result = analyze_sharpness(_make_checkerboard(64, 64))
        assert result.score == 100.0
        assert result.verdict == SharpnessVerdict.SHARP

    def test_uniform_image_is_rejected(self) -> None:
        result = analyze_sharpness(_make_uniform((128, 128, 128), 64, 64))
        assert result.score == 0.0
        assert result.verdict == SharpnessVerdict.REJECTED

    @pytest.mark.parametrize(
        ("score", "verdict"),
        [(39.9, SharpnessVerdict.REJECTED), (40.0, SharpnessVerdict.ACCEPTABLE), (70.0, SharpnessVerdict.SHARP)],
    )
    def test_verdict_bands(self, score: float, verdict: SharpnessVerdict) -> None:
        assert classify_sharpness(score) == verdict


# ---------------------------------------------------------------------------
# Exposure
# ---------------------------------------------------------------------------


class TestExposure:
    def test_mid_gray_is_normal(self) -> None:
        result = analyze_exposure(_make_uniform((128, 128, 128), 32, 32))
        assert result.mean_brightness == pytest.approx(128.0)
        assert result.verdict == ExposureVerdict.NORMAL
        assert result.extreme is False

    def test_flat_frame_has_low_confidence(self) -> None:
        result = analyze_exposure(_make_uniform((128, 128, 128), 32, 32))
        assert result.confidence == pytest.approx(0.4)

    def test_dark_frame_is_extreme(self) -> None:
        result = analyze_exposure(_make_uniform((10, 10, 10), 32, 32))
        assert result.verdict == ExposureVerdict.UNDEREXPOSED
        assert result.extreme is True
        assert result.crushed_ratio == 0.0

    def test_clipped_ratio_counts_highlights(self) -> None:
        result = analyze_exposure(_make_checkerboard(32, 32))
        assert result.clipped_ratio == pytest.approx(0.5)
        assert result.crushed_ratio == pytest.approx(0.5)

    def test_bands(self) -> None:
        assert classify_exposure(69.9) == ExposureVerdict.UNDEREXPOSED
        assert classify_exposure(190.0) == ExposureVerdict.NORMAL
        assert classify_exposure(190.1) == ExposureVerdict.OVEREXPOSED

    def test_empty_image_raises(self) -> None:
        with pytest.raises(InvalidImageError):
            analyze_exposure(RawImageBuffer.empty())


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestResolution:
    def test_below_minimum_is_invalid(self) -> None:
        result = check_resolution(319, 480)
        assert result.is_valid is False

    def test_below_recommended_is_valid_with_feedback(self) -> None:
        result = check_resolution(320, 240)
        assert result.is_valid is True
        assert result.meets_recommended is False
        assert "higher resolution" in result.feedback

    def test_recommended(self) -> None:
        assert check_resolution(640, 480).meets_recommended is True


# ---------------------------------------------------------------------------
# Color temperature
# ---------------------------------------------------------------------------


class TestColorTemperature:
    def test_white_is_near_d65(self) -> None:
        assert calculate_cct_from_rgb(RGB(255.0, 255.0, 255.0)) == pytest.approx(6500.0, abs=100.0)

    def test_warm_cast_is_warm(self) -> None:
        kelvin = calculate_cct_from_rgb(RGB(255.0, 200.0, 150.0))
        assert kelvin < 5500.0
        assert classify_cct(kelvin) == CCTVerdict.WARM

    def test_cool_cast_is_cool(self) -> None:
        kelvin = calculate_cct_from_rgb(RGB(200.0, 220.0, 255.0))
        assert classify_cct(kelvin) == CCTVerdict.COOL

    def test_kelvin_is_always_finite_and_clamped(self) -> None:
        assert calculate_cct_from_chromaticity(Chromaticity(0.3320, 0.1858)) == 25000.0
        assert 1000.0 <= calculate_cct_from_chromaticity(Chromaticity(0.7, 0.29)) <= 25000.0

    @pytest.mark.parametrize(
        ("kelvin", "expected"),
        [(6500.0, 1.0), (4000.0, 0.7), (7500.0, 0.7), (10500.0, 0.1), (1000.0, 0.1)],
    )
    def test_confidence(self, kelvin: float, expected: float) -> None:
        assert calculate_cct_confidence(kelvin) == pytest.approx(expected)

    def test_confidence_drops_outside_acceptable_range(self) -> None:
        assert calculate_cct_confidence(3900.0) < 0.7

    def test_uses_bright_pixels(self) -> None:
        pixels = np.zeros((10, 10, 3), dtype=np.uint8)
        pixels[:5] = (255, 255, 255)
        pixels[5:] = (40, 10, 0)
        result = analyze_color_temperature(RawImageBuffer(pixels))
        assert result.verdict == CCTVerdict.NEUTRAL


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class TestAssessImageQuality:
    def test_sharp_well_exposed_image_is_acceptable(self) -> None:
        report = assess_image_quality(_make_checkerboard())
        assert report.is_acceptable is True
        assert report.primary_issue is None
        assert report.source == ResultSource.MEASURED
        assert 0.0 <= report.confidence <= 1.0

    def test_blurry_image_is_rejected(self) -> None:
        report = assess_image_quality(_make_uniform((128, 128, 128)))
        assert report.is_acceptable is False
        assert report.primary_issue == report.sharpness.feedback

    def test_resolution_is_the_primary_issue(self) -> None:
        report = assess_image_quality(_make_uniform((128, 128, 128), 100, 100))
        assert report.primary_issue == report.resolution.feedback  # type: ignore[union-attr]
        assert report.all_issues[1] == report.sharpness.feedback

    def test_extreme_exposure_is_rejected(self) -> None:
        report = assess_image_quality(_make_checkerboard(low=0, high=20))
        assert report.exposure.extreme is True
        assert report.is_acceptable is False

    def test_empty_image_is_rejected(self) -> None:
        report = assess_image_quality(RawImageBuffer.empty())
        assert report.is_acceptable is False
        assert report.primary_issue == EMPTY_IMAGE_REASON
        assert report.confidence == pytest.approx(0.1)
        assert report.degraded_reason == DegradedReason.INVALID_INPUT

    @patch("skintonex.engine.quality.validator.analyze_sharpness")
    def test_failure_returns_fallback(self, mock_sharpness: MagicMock) -> None:
        mock_sharpness.side_effect = RuntimeError("boom")
        report = assess_image_quality(_make_checkerboard(64, 64))
        assert report.source == ResultSource.FALLBACK
        assert report.degraded_reason == DegradedReason.ERROR
        assert report.confidence == pytest.approx(0.5)

    def test_overall_score_renormalizes_without_resolution(self) -> None:
        report = assess_image_quality(_make_checkerboard())
        with_resolution = calculate_overall_score(
            report.sharpness, report.exposure, report.color_temperature, report.resolution
        )
        without_resolution = calculate_overall_score(report.sharpness, report.exposure, report.color_temperature)
        assert 0.0 <= without_resolution <= 100.0
        assert with_resolution == pytest.approx(report.overall_score)

    def test_serializes_camel_case(self) -> None:
        data = assess_image_quality(_make_checkerboard()).model_dump(by_alias=True)
        assert "colorTemperature" in data
        assert "kelvin" in data["colorTemperature"]
        assert "isAcceptable" in data


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------


class TestQualityFallbacks:
    def test_whole_stage_fallback(self) -> None:
        report = generate_quality_fallback(12.0, DegradedReason.TIMEOUT)
        assert report.is_acceptable is True
        assert report.confidence <= 0.5
        assert report.is_degraded is True
        assert report.processing_time == 12.0

    def test_partial_fallback_scales_confidence(self) -> None:
        report = generate_partial_quality_fallback({"confidence": 0.9, "overall_score": 60.0})
        assert report.confidence == pytest.approx(0.72)
        assert report.overall_score == 60.0
        assert report.source == ResultSource.PARTIAL

    def test_partial_fallback_defaults_confidence(self) -> None:
        report = generate_partial_quality_fallback({})
        assert report.confidence == pytest.approx(0.4)

    def test_rejected_fallback_carries_reason(self) -> None:
        report = generate_rejected_quality_fallback("corrupt")
        assert report.confidence <= 0.1
        assert report.all_issues == ("corrupt",)
        feedback = (
            report.sharpness.feedback,
            report.exposure.feedback,
            report.color_temperature.feedback,
            report.resolution.feedback if report.resolution else None,
        )
        assert feedback == ("corrupt",) * 4
        assert report.resolution is not None
        assert report.resolution.is_valid is False

    def test_mock_is_plausible(self) -> None:
        report = generate_random_quality_mock(np.random.default_rng(7))
        assert report.source == ResultSource.MOCK
        assert report.is_degraded is False
        assert report.confidence >= 0.8
