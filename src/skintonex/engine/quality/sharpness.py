"""Laplacian-variance sharpness metric."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

from skintonex.engine.constants import FEEDBACK_MESSAGES, SharpnessThresholds
from skintonex.engine.image_stats import to_luminance
from skintonex.engine.types import SharpnessVerdict
from skintonex.schemas import SharpnessResult

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from skintonex.engine.types import RawImageBuffer


def calculate_laplacian_variance(gray: NDArray[np.float64]) -> float:
    """Variance of the 4-neighbour Laplacian over interior pixels.

    Border pixels are dropped so edge padding does not count as texture.
    Images smaller than 3x3 have no interior and report zero.
    """
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    laplacian = cv2.Laplacian(gray, cv2.CV_64F, ksize=1)
    return float(laplacian[1:-1, 1:-1].var())


def calculate_sharpness_score(variance: float, thresholds: SharpnessThresholds | None = None) -> float:
    thresholds = thresholds or SharpnessThresholds()
    return float(np.clip(variance / thresholds.variance_ceiling * 100.0, 0.0, 100.0))


def classify_sharpness(score: float, thresholds: SharpnessThresholds | None = None) -> SharpnessVerdict:
    thresholds = thresholds or SharpnessThresholds()
    if score < thresholds.acceptable_from:
        return SharpnessVerdict.REJECTED
    if score < thresholds.sharp_from:
        return SharpnessVerdict.ACCEPTABLE
    return SharpnessVerdict.SHARP


def analyze_sharpness(image: RawImageBuffer, thresholds: SharpnessThresholds | None = None) -> SharpnessResult:
    thresholds = thresholds or SharpnessThresholds()
    variance = calculate_laplacian_variance(to_luminance(image.pixels))
    score = calculate_sharpness_score(variance, thresholds)
    verdict = classify_sharpness(score, thresholds)
    return SharpnessResult(
        score=score,
        laplacian_variance=variance,
        verdict=verdict,
        feedback=FEEDBACK_MESSAGES[f"sharpness.{verdict}"],
    )
