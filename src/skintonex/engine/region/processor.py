"""Region stage entry point."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, FEEDBACK_MESSAGES, RegionConfig
from skintonex.engine.region.extractor import extract_face_region, extract_square_face_region
from skintonex.engine.region.fallback import generate_no_face_fallback, generate_region_error_fallback
from skintonex.engine.region.frontality import assess_frontality
from skintonex.engine.timing import elapsed_ms
from skintonex.schemas import RegionResult

if TYPE_CHECKING:
    from skintonex.engine.types import DetectedFace, RawImageBuffer

logger = logging.getLogger(__name__)


def process_face_region(
    image: RawImageBuffer,
    face: DetectedFace | None,
    config: RegionConfig | None = None,
) -> RegionResult:
    """Extract the face region for ``face``, scoring pose and detector confidence.

    Never raises. Without a face the result reports ``face_detected=False``;
    an empty image or an extraction failure yields an error fallback.
    """
    config = config or DEFAULT_ENGINE_CONFIG.region
    start = time.perf_counter()

    if image.is_empty:
        return generate_region_error_fallback("Cannot extract a face region from an empty image", elapsed_ms(start))
    if face is None:
        return generate_no_face_fallback(elapsed_ms(start))

    try:
        extract = extract_square_face_region if config.square else extract_face_region
        region = extract(image, face, config.padding_ratio)
        frontality = assess_frontality(face.angle, config.frontality) if face.angle is not None else None
    except Exception as exc:
        logger.exception("Face region extraction failed")
        return generate_region_error_fallback(str(exc) or type(exc).__name__, elapsed_ms(start))

    confidence = min(1.0, max(0.0, face.confidence))
    if frontality is not None:
        confidence *= 0.5 + 0.5 * frontality.score / 100.0

    feedback = None
    if face.confidence < config.min_face_confidence:
        feedback = FEEDBACK_MESSAGES["face.low_confidence"]
    elif frontality is not None:
        feedback = frontality.feedback

    result = RegionResult(
        success=True,
        face_detected=True,
        region=region,
        frontality=frontality,
        confidence=confidence,
        feedback=feedback,
        processing_time=elapsed_ms(start),
    )
    logger.debug(
        "Face region %dx%d extracted (confidence=%.2f, %.1fms)",
        region.width,
        region.height,
        result.confidence,
        result.processing_time,
    )
    return result
