"""Image quality gate: combines the individual metrics into one verdict."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, QualityConfig, QualityWeights
from skintonex.engine.quality.color_temperature import analyze_color_temperature
from skintonex.engine.quality.exposure import analyze_exposure, calculate_exposure_score
from skintonex.engine.quality.fallback import generate_quality_fallback, generate_rejected_quality_fallback
from skintonex.engine.quality.resolution import calculate_resolution_score, check_resolution
from skintonex.engine.quality.sharpness import analyze_sharpness
from skintonex.engine.timing import elapsed_ms
from skintonex.engine.types import CCTVerdict, DegradedReason, ExposureVerdict, SharpnessVerdict
from skintonex.schemas import QualityReport

if TYPE_CHECKING:
    from skintonex.engine.types import RawImageBuffer
    from skintonex.schemas import ColorTemperatureResult, ExposureResult, ResolutionResult, SharpnessResult

logger = logging.getLogger(__name__)

EMPTY_IMAGE_REASON = "The image is empty or could not be decoded."


def is_image_acceptable(
    sharpness: SharpnessResult,
    exposure: ExposureResult,
    resolution: ResolutionResult | None,
) -> bool:
    resolution_ok = resolution is None or resolution.is_valid
    return resolution_ok and sharpness.verdict != SharpnessVerdict.REJECTED and not exposure.extreme


def calculate_overall_score(
    sharpness: SharpnessResult,
    exposure: ExposureResult,
    color_temperature: ColorTemperatureResult,
    resolution: ResolutionResult | None = None,
    weights: QualityWeights | None = None,
) -> float:
    """Weighted 0-100 score. Without a resolution reading its weight is redistributed."""
    weights = weights or QualityWeights()
    parts = [
        (weights.sharpness, sharpness.score),
        (weights.exposure, calculate_exposure_score(exposure)),
        (weights.color_temperature, color_temperature.confidence * 100.0),
    ]
    if resolution is not None:
        parts.append((weights.resolution, calculate_resolution_score(resolution)))
    total_weight = sum(weight for weight, _ in parts)
    if total_weight <= 0:
        return 0.0
    return min(100.0, max(0.0, sum(weight * score for weight, score in parts) / total_weight))


def collect_all_issues(
    sharpness: SharpnessResult,
    exposure: ExposureResult,
    color_temperature: ColorTemperatureResult,
    resolution: ResolutionResult | None = None,
) -> list[str]:
    """Feedback for every failing metric, ordered resolution, sharpness, exposure, CCT."""
    issues: list[str] = []
    if resolution is not None and not resolution.is_valid:
        issues.append(resolution.feedback)
    if sharpness.verdict == SharpnessVerdict.REJECTED:
        issues.append(sharpness.feedback)
    if exposure.extreme or exposure.verdict != ExposureVerdict.NORMAL:
        issues.append(exposure.feedback)
    if color_temperature.verdict != CCTVerdict.NEUTRAL:
        issues.append(color_temperature.feedback)
    return issues


def select_primary_issue(
    sharpness: SharpnessResult,
    exposure: ExposureResult,
    color_temperature: ColorTemperatureResult,
    resolution: ResolutionResult | None = None,
) -> str | None:
    issues = collect_all_issues(sharpness, exposure, color_temperature, resolution)
    return issues[0] if issues else None


def assess_image_quality(image: RawImageBuffer, config: QualityConfig | None = None) -> QualityReport:
    """Run every quality metric over ``image``.

    Never raises: an empty image yields a rejected report and an unexpected
    failure yields the optimistic whole-stage fallback.
    """
    config = config or DEFAULT_ENGINE_CONFIG.quality
    start = time.perf_counter()

    if image.is_empty:
        return generate_rejected_quality_fallback(EMPTY_IMAGE_REASON, elapsed_ms(start))

    try:
        sharpness = analyze_sharpness(image, config.sharpness)
        exposure = analyze_exposure(image, config.exposure)
        color_temperature = analyze_color_temperature(image, config.color_temperature)
        resolution = check_resolution(image.width, image.height, config.resolution)
    except Exception:
        logger.exception("Quality assessment failed, using fallback")
        return generate_quality_fallback(elapsed_ms(start), DegradedReason.ERROR)

    issues = collect_all_issues(sharpness, exposure, color_temperature, resolution)
    report = QualityReport(
        is_acceptable=is_image_acceptable(sharpness, exposure, resolution),
        overall_score=calculate_overall_score(sharpness, exposure, color_temperature, resolution, config.weights),
        confidence=(exposure.confidence + color_temperature.confidence) / 2.0,
        sharpness=sharpness,
        exposure=exposure,
        color_temperature=color_temperature,
        resolution=resolution,
        primary_issue=issues[0] if issues else None,
        all_issues=tuple(issues),
        processing_time=elapsed_ms(start),
    )
    logger.debug(
        "Quality assessed (acceptable=%s, score=%.1f, %.1fms)",
        report.is_acceptable,
        report.overall_score,
        report.processing_time,
    )
    return report
