"""Region stage fallbacks."""

from __future__ import annotations

import logging

from skintonex.engine.constants import FEEDBACK_MESSAGES, REJECTION_CONFIDENCE, WHOLE_STAGE_FALLBACK_CONFIDENCE
from skintonex.engine.types import DegradedReason, ResultSource
from skintonex.schemas import RegionResult

logger = logging.getLogger(__name__)


def generate_region_fallback(
    processing_time: float = 0.0,
    reason: DegradedReason | None = None,
) -> RegionResult:
    """Assume a face is present but provide no crop, so callers use the full frame."""
    return RegionResult(
        success=True,
        face_detected=True,
        region=None,
        confidence=WHOLE_STAGE_FALLBACK_CONFIDENCE,
        processing_time=processing_time,
        source=ResultSource.FALLBACK,
        degraded_reason=reason,
    )


def generate_no_face_fallback(processing_time: float = 0.0) -> RegionResult:
    return RegionResult(
        success=True,
        face_detected=False,
        region=None,
        confidence=REJECTION_CONFIDENCE,
        processing_time=processing_time,
        feedback=FEEDBACK_MESSAGES["face.not_detected"],
        source=ResultSource.REJECTED,
        degraded_reason=DegradedReason.INSUFFICIENT_EVIDENCE,
    )


def generate_region_error_fallback(reason: str, processing_time: float = 0.0) -> RegionResult:
    logger.warning("Region extraction failed: %s", reason)
    return RegionResult(
        success=False,
        face_detected=False,
        region=None,
        confidence=REJECTION_CONFIDENCE,
        processing_time=processing_time,
        feedback=reason,
        source=ResultSource.REJECTED,
        degraded_reason=DegradedReason.ERROR,
    )
