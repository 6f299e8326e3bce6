"""White balance fallbacks and demo mocks."""

from __future__ import annotations

import logging

import numpy as np

from skintonex.engine.constants import (
    D65_CCT,
    PARTIAL_FALLBACK_MULTIPLIER,
    REJECTION_CONFIDENCE,
    WHOLE_STAGE_FALLBACK_CONFIDENCE,
)
from skintonex.engine.types import UNIT_GAINS, AWBGains, AWBMethod, DegradedReason, RawImageBuffer, ResultSource
from skintonex.schemas import AWBCorrectionResult, AWBMetadata, AWBResult, SkinDetectionSummary

logger = logging.getLogger(__name__)

NO_SKIN = SkinDetectionSummary(detected=False, coverage=0.0)


def generate_awb_correction_fallback() -> AWBCorrectionResult:
    """Identity correction with no pixels attached."""
    return AWBCorrectionResult(
        corrected_image=RawImageBuffer.empty(),
        gains=UNIT_GAINS,
        original_cct=D65_CCT,
        corrected_cct=D65_CCT,
        method=AWBMethod.NONE,
        confidence=WHOLE_STAGE_FALLBACK_CONFIDENCE,
    )


def generate_awb_fallback(
    processing_time: float = 0.0,
    reason: DegradedReason | None = None,
    skin_detection: SkinDetectionSummary | None = None,
) -> AWBResult:
    """Whole-stage fallback: succeed without correcting, confidence 0.5."""
    return AWBResult(
        success=True,
        correction_applied=False,
        result=None,
        skin_detection=skin_detection or NO_SKIN,
        metadata=AWBMetadata(
            processing_time=processing_time,
            method_used=AWBMethod.NONE,
            confidence=WHOLE_STAGE_FALLBACK_CONFIDENCE,
        ),
        source=ResultSource.FALLBACK,
        degraded_reason=reason,
    )


def generate_corrected_awb_fallback(original_cct: float, processing_time: float = 0.0) -> AWBResult:
    """Typical mild warm-cast correction, used when only the frame CCT is known.

    No corrected pixels are attached, so consumers keep their input image.
    """
    confidence = WHOLE_STAGE_FALLBACK_CONFIDENCE * PARTIAL_FALLBACK_MULTIPLIER
    return AWBResult(
        success=True,
        correction_applied=True,
        result=AWBCorrectionResult(
            corrected_image=RawImageBuffer.empty(),
            gains=AWBGains(r=1.1, g=1.0, b=0.9),
            original_cct=original_cct,
            corrected_cct=D65_CCT,
            method=AWBMethod.GRAY_WORLD,
            confidence=confidence,
        ),
        skin_detection=SkinDetectionSummary(detected=True, coverage=0.15),
        metadata=AWBMetadata(
            processing_time=processing_time,
            method_used=AWBMethod.GRAY_WORLD,
            confidence=confidence,
        ),
        source=ResultSource.PARTIAL,
        degraded_reason=DegradedReason.INSUFFICIENT_EVIDENCE,
    )


def generate_error_awb_fallback(reason: str, processing_time: float = 0.0) -> AWBResult:
    logger.warning("White balance failed: %s", reason)
    return AWBResult(
        success=False,
        correction_applied=False,
        result=None,
        skin_detection=NO_SKIN,
        metadata=AWBMetadata(
            processing_time=processing_time,
            method_used=AWBMethod.NONE,
            confidence=REJECTION_CONFIDENCE,
        ),
        error=reason,
        source=ResultSource.REJECTED,
        degraded_reason=DegradedReason.ERROR,
    )


def generate_random_awb_mock(rng: np.random.Generator | None = None) -> AWBResult:
    """Plausible correction summary for demos and UI development."""
    rng = rng or np.random.default_rng()
    applied = bool(rng.random() < 0.7)
    coverage = float(rng.uniform(0.0, 0.4))
    confidence = float(rng.uniform(0.6, 1.0))
    original_cct = float(rng.uniform(4500.0, 8000.0))
    method = AWBMethod.NONE
    if applied:
        method = AWBMethod.SKIN_AWARE if rng.random() < 0.6 else AWBMethod.GRAY_WORLD

    result = None
    if applied:
        result = AWBCorrectionResult(
            corrected_image=RawImageBuffer.empty(),
            gains=AWBGains(
                r=float(rng.uniform(0.85, 1.2)),
                g=1.0,
                b=float(rng.uniform(0.85, 1.2)),
            ),
            original_cct=original_cct,
            corrected_cct=float(rng.uniform(6200.0, 6800.0)),
            method=method,
            confidence=confidence,
        )
    return AWBResult(
        success=True,
        correction_applied=applied,
        result=result,
        skin_detection=SkinDetectionSummary(detected=coverage > 0.05, coverage=coverage),
        metadata=AWBMetadata(
            processing_time=float(rng.uniform(30.0, 200.0)),
            method_used=method,
            confidence=confidence,
        ),
        source=ResultSource.MOCK,
    )
