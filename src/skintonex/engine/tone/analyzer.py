"""Tone stage entry point: measure skin color in an image and classify it."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from skintonex.engine.awb.skin_detector import calculate_skin_average_rgb, clean_skin_mask, detect_skin_mask
from skintonex.engine.color_space import calculate_ita, rgb_to_lab
from skintonex.engine.constants import (
    DEFAULT_ENGINE_CONFIG,
    PARTIAL_FALLBACK_MULTIPLIER,
    WHOLE_STAGE_FALLBACK_CONFIDENCE,
    SkinDetectionThresholds,
    ToneConfig,
)
from skintonex.engine.image_stats import calculate_image_average_rgb
from skintonex.engine.timing import elapsed_ms
from skintonex.engine.tone.classifier import classify_skin_brightness, classify_tone
from skintonex.engine.tone.fallback import generate_error_tone_fallback
from skintonex.engine.types import DegradedReason, ResultSource
from skintonex.schemas import ToneAnalysisResult

if TYPE_CHECKING:
    from skintonex.engine.tone.cache import ClassificationCache
    from skintonex.engine.types import RawImageBuffer, SkinMask

logger = logging.getLogger(__name__)


def calculate_measurement_confidence(
    skin_ratio: float,
    classification_confidence: float,
    min_skin_ratio: float,
) -> float:
    """Stage confidence (0-1) from skin coverage and classification certainty (0-100).

    Coverage contributes fully once skin covers twice ``min_skin_ratio``.
    """
    coverage = 1.0 if min_skin_ratio <= 0 else min(1.0, skin_ratio / (2.0 * min_skin_ratio))
    certainty = max(0.0, min(1.0, classification_confidence / 100.0))
    return max(0.0, min(1.0, (0.6 + 0.4 * coverage) * (0.5 + 0.5 * certainty)))


def analyze_skin_tone(
    image: RawImageBuffer,
    skin_mask: SkinMask | None = None,
    config: ToneConfig | None = None,
    *,
    skin_thresholds: SkinDetectionThresholds | None = None,
    cache: ClassificationCache | None = None,
) -> ToneAnalysisResult:
    """Average the skin pixels of ``image`` and classify the result.

    Never raises.

    Args:
        image: Face crop, ideally white balanced.
        skin_mask: Mask from an earlier stage, reused when its dimensions
            match the image. Otherwise skin is detected again.
        config: Classification parameters; defaults to the engine config.
        skin_thresholds: Skin locus used when detecting skin here.
        cache: Optional classification cache.

    Returns:
        A measured result, or a partial one built from the whole-frame average
        when too little skin is visible. Empty images and unexpected failures
        return the error fallback.
    """
    config = config or DEFAULT_ENGINE_CONFIG.tone
    start = time.perf_counter()

    if image.is_empty:
        return generate_error_tone_fallback(
            "Cannot analyze skin tone of an empty image",
            elapsed_ms(start),
            DegradedReason.INVALID_INPUT,
        )

    try:
        if skin_mask is None or not skin_mask.matches(image):
            thresholds = skin_thresholds or DEFAULT_ENGINE_CONFIG.awb.skin_detection
            skin_mask = clean_skin_mask(detect_skin_mask(image, thresholds))

        skin_ratio = skin_mask.skin_ratio
        measured = None
        if skin_mask.skin_pixel_count > 0 and skin_ratio >= config.min_skin_ratio:
            measured = calculate_skin_average_rgb(image, skin_mask)

        partial = measured is None
        if partial:
            logger.warning(
                "Skin covers %.1f%% of the region, classifying the frame average instead",
                skin_ratio * 100.0,
            )
            measured = calculate_image_average_rgb(image)
        if measured is None:
            return generate_error_tone_fallback("No pixels to measure", elapsed_ms(start), DegradedReason.INVALID_INPUT)

        lab = rgb_to_lab(measured.r, measured.g, measured.b)
        classification = classify_tone(lab, config, cache=cache)
    except Exception as exc:
        logger.exception("Tone analysis failed")
        return generate_error_tone_fallback(str(exc) or type(exc).__name__, elapsed_ms(start))

    if partial:
        confidence = WHOLE_STAGE_FALLBACK_CONFIDENCE * PARTIAL_FALLBACK_MULTIPLIER
        source = ResultSource.PARTIAL
        reason: DegradedReason | None = DegradedReason.INSUFFICIENT_EVIDENCE
    else:
        confidence = calculate_measurement_confidence(skin_ratio, classification.confidence, config.min_skin_ratio)
        source = ResultSource.MEASURED
        reason = None

    processing_time = elapsed_ms(start)
    logger.debug("Tone %s from %.1f%% skin in %.1fms", classification.tone, skin_ratio * 100.0, processing_time)
    return ToneAnalysisResult(
        success=True,
        classification=classification,
        measured_rgb=measured,
        skin_brightness=classify_skin_brightness(lab),
        ita=calculate_ita(lab),
        skin_ratio=skin_ratio,
        confidence=confidence,
        processing_time=processing_time,
        source=source,
        degraded_reason=reason,
    )
