"""Exposure analysis from the luminance histogram."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from skintonex.engine.constants import FEEDBACK_MESSAGES, ExposureThresholds
from skintonex.engine.image_stats import to_luminance
from skintonex.engine.types import ExposureVerdict, InvalidImageError
from skintonex.schemas import ExposureResult

if TYPE_CHECKING:
    from skintonex.engine.types import RawImageBuffer


def classify_exposure(mean_brightness: float, thresholds: ExposureThresholds | None = None) -> ExposureVerdict:
    thresholds = thresholds or ExposureThresholds()
    if mean_brightness < thresholds.underexposed_below:
        return ExposureVerdict.UNDEREXPOSED
    if mean_brightness > thresholds.overexposed_above:
        return ExposureVerdict.OVEREXPOSED
    return ExposureVerdict.NORMAL


def is_extreme_exposure(mean_brightness: float, thresholds: ExposureThresholds | None = None) -> bool:
    thresholds = thresholds or ExposureThresholds()
    return mean_brightness < thresholds.extreme_low or mean_brightness > thresholds.extreme_high


def calculate_exposure_confidence(std_dev: float, thresholds: ExposureThresholds | None = None) -> float:
    """Flat, low-contrast frames make the mean less informative."""
    thresholds = thresholds or ExposureThresholds()
    return 0.4 + 0.6 * min(1.0, std_dev / thresholds.contrast_reference_std)


def calculate_exposure_score(exposure: ExposureResult) -> float:
    """0-100 score peaking at mid-gray."""
    return float(np.clip(100.0 - abs(exposure.mean_brightness - 128.0) / 128.0 * 100.0, 0.0, 100.0))


def analyze_exposure(image: RawImageBuffer, thresholds: ExposureThresholds | None = None) -> ExposureResult:
    """Summarize the brightness histogram of ``image``.

    Raises:
        InvalidImageError: If the image has no pixels.
    """
    if image.is_empty:
        raise InvalidImageError("Cannot analyze exposure of an empty image")
    thresholds = thresholds or ExposureThresholds()

    luminance = to_luminance(image.pixels)
    histogram = np.bincount(np.clip(np.rint(luminance), 0, 255).astype(np.intp).ravel(), minlength=256)
    total = float(histogram.sum())
    mean = float(luminance.mean())
    std_dev = float(luminance.std())

    verdict = classify_exposure(mean, thresholds)
    extreme = is_extreme_exposure(mean, thresholds)
    feedback_key = "exposure.extreme" if extreme else f"exposure.{verdict}"
    return ExposureResult(
        mean_brightness=mean,
        std_dev=std_dev,
        clipped_ratio=float(histogram[thresholds.clip_level :].sum()) / total,
        crushed_ratio=float(histogram[: thresholds.crush_level + 1].sum()) / total,
        verdict=verdict,
        extreme=extreme,
        confidence=calculate_exposure_confidence(std_dev, thresholds),
        feedback=FEEDBACK_MESSAGES[feedback_key],
    )
