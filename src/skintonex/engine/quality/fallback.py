"""Quality gate fallbacks and demo mocks.

Fallbacks keep the pipeline moving when the gate itself fails: the whole-stage
fallback is optimistic (acceptable, 0.5 confidence) while the rejected fallback
stops the pipeline with 0.1 confidence.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from skintonex.engine.constants import (
    FEEDBACK_MESSAGES,
    PARTIAL_FALLBACK_MULTIPLIER,
    REJECTION_CONFIDENCE,
    WHOLE_STAGE_FALLBACK_CONFIDENCE,
    QualityConfig,
)
from skintonex.engine.quality.color_temperature import (
    calculate_cct_confidence,
    classify_cct,
    neutral_color_temperature,
)
from skintonex.engine.quality.exposure import classify_exposure
from skintonex.engine.quality.resolution import check_resolution
from skintonex.engine.quality.sharpness import classify_sharpness
from skintonex.engine.types import (
    Chromaticity,
    DegradedReason,
    ExposureVerdict,
    ResultSource,
    SharpnessVerdict,
)
from skintonex.schemas import (
    ColorTemperatureResult,
    ExposureResult,
    QualityReport,
    ResolutionResult,
    SharpnessResult,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

FALLBACK_SHARPNESS_SCORE = 70.0
FALLBACK_OVERALL_SCORE = 70.0


def generate_sharpness_fallback() -> SharpnessResult:
    ceiling = QualityConfig().sharpness.variance_ceiling
    return SharpnessResult(
        score=FALLBACK_SHARPNESS_SCORE,
        laplacian_variance=FALLBACK_SHARPNESS_SCORE / 100.0 * ceiling,
        verdict=SharpnessVerdict.ACCEPTABLE,
        feedback=FEEDBACK_MESSAGES["sharpness.acceptable"],
    )


def generate_exposure_fallback() -> ExposureResult:
    return ExposureResult(
        mean_brightness=128.0,
        verdict=ExposureVerdict.NORMAL,
        confidence=WHOLE_STAGE_FALLBACK_CONFIDENCE,
        feedback=FEEDBACK_MESSAGES["exposure.normal"],
    )


def generate_color_temperature_fallback() -> ColorTemperatureResult:
    return neutral_color_temperature(WHOLE_STAGE_FALLBACK_CONFIDENCE)


def generate_quality_fallback(
    processing_time: float = 0.0,
    reason: DegradedReason | None = None,
) -> QualityReport:
    """Optimistic whole-stage fallback: acceptable, score 70, confidence 0.5."""
    return QualityReport(
        is_acceptable=True,
        overall_score=FALLBACK_OVERALL_SCORE,
        confidence=WHOLE_STAGE_FALLBACK_CONFIDENCE,
        sharpness=generate_sharpness_fallback(),
        exposure=generate_exposure_fallback(),
        color_temperature=generate_color_temperature_fallback(),
        resolution=None,
        primary_issue=None,
        all_issues=(),
        processing_time=processing_time,
        source=ResultSource.FALLBACK,
        degraded_reason=reason,
    )


def generate_partial_quality_fallback(partial: Mapping[str, Any], processing_time: float = 0.0) -> QualityReport:
    """Merge whatever was measured over the whole-stage fallback.

    Args:
        partial: Measured ``QualityReport`` fields keyed by attribute name.
        processing_time: Milliseconds spent before the failure.

    Returns:
        A report tagged ``partial`` whose confidence is the measured (or
        default 0.5) confidence scaled by 0.8.
    """
    base_confidence = partial.get("confidence")
    if base_confidence is None:
        base_confidence = WHOLE_STAGE_FALLBACK_CONFIDENCE
    update = {key: value for key, value in partial.items() if key in QualityReport.model_fields}
    update.update(
        confidence=float(base_confidence) * PARTIAL_FALLBACK_MULTIPLIER,
        processing_time=processing_time,
        source=ResultSource.PARTIAL,
        degraded_reason=DegradedReason.ERROR,
    )
    return generate_quality_fallback().model_copy(update=update)


def generate_rejected_quality_fallback(
    reason: str,
    processing_time: float = 0.0,
    degraded_reason: DegradedReason = DegradedReason.INVALID_INPUT,
) -> QualityReport:
    """Terminal rejection carrying ``reason`` in every feedback string."""
    logger.warning("Quality gate rejected input: %s", reason)
    return QualityReport(
        is_acceptable=False,
        overall_score=0.0,
        confidence=REJECTION_CONFIDENCE,
        sharpness=SharpnessResult(
            score=0.0,
            laplacian_variance=0.0,
            verdict=SharpnessVerdict.REJECTED,
            feedback=reason,
        ),
        exposure=ExposureResult(
            mean_brightness=0.0,
            verdict=ExposureVerdict.UNDEREXPOSED,
            extreme=True,
            confidence=REJECTION_CONFIDENCE,
            feedback=reason,
        ),
        color_temperature=neutral_color_temperature(REJECTION_CONFIDENCE, feedback=reason),
        resolution=ResolutionResult(width=0, height=0, is_valid=False, meets_recommended=False, feedback=reason),
        primary_issue=reason,
        all_issues=(reason,),
        processing_time=processing_time,
        source=ResultSource.REJECTED,
        degraded_reason=degraded_reason,
    )


def generate_random_quality_mock(rng: np.random.Generator | None = None) -> QualityReport:
    """Plausible passing report for demos and UI development."""
    rng = rng or np.random.default_rng()
    config = QualityConfig()

    sharpness_score = float(rng.uniform(config.sharpness.sharp_from, 100.0))
    mean_brightness = float(rng.uniform(100.0, 160.0))
    kelvin = float(rng.uniform(4000.0, 8000.0))
    cct_verdict = classify_cct(kelvin)
    exposure_verdict = classify_exposure(mean_brightness)
    sharpness_verdict = classify_sharpness(sharpness_score)

    return QualityReport(
        is_acceptable=True,
        overall_score=float(rng.uniform(75.0, 95.0)),
        confidence=float(rng.uniform(0.8, 1.0)),
        sharpness=SharpnessResult(
            score=sharpness_score,
            laplacian_variance=sharpness_score / 100.0 * config.sharpness.variance_ceiling,
            verdict=sharpness_verdict,
            feedback=FEEDBACK_MESSAGES[f"sharpness.{sharpness_verdict}"],
        ),
        exposure=ExposureResult(
            mean_brightness=mean_brightness,
            std_dev=float(rng.uniform(30.0, 60.0)),
            verdict=exposure_verdict,
            confidence=float(rng.uniform(0.8, 1.0)),
            feedback=FEEDBACK_MESSAGES[f"exposure.{exposure_verdict}"],
        ),
        color_temperature=ColorTemperatureResult(
            kelvin=kelvin,
            chromaticity=Chromaticity(x=0.3127, y=0.329),
            verdict=cct_verdict,
            confidence=calculate_cct_confidence(kelvin),
            feedback=FEEDBACK_MESSAGES[f"cct.{cct_verdict}"],
        ),
        resolution=check_resolution(1024, 768, config.resolution),
        processing_time=float(rng.uniform(20.0, 120.0)),
        source=ResultSource.MOCK,
    )
