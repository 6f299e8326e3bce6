"""White balance stage entry points, including the time-bounded variant."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import TYPE_CHECKING

from skintonex.engine.awb.algorithms import select_and_apply_awb
from skintonex.engine.awb.fallback import generate_awb_fallback, generate_error_awb_fallback
from skintonex.engine.awb.skin_detector import clean_skin_mask, detect_skin_mask
from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, PROCESSING_TIMEOUT_MS, AWBConfig
from skintonex.engine.timing import elapsed_ms
from skintonex.engine.types import AWBMethod, DegradedReason
from skintonex.schemas import AWBMetadata, AWBResult, SkinDetectionSummary

if TYPE_CHECKING:
    from skintonex.engine.types import RGB, RawImageBuffer
    from skintonex.workers import WorkerPool

logger = logging.getLogger(__name__)


def process_awb_correction(
    image: RawImageBuffer,
    config: AWBConfig | None = None,
    *,
    reference_white: RGB | None = None,
) -> AWBResult:
    """Detect skin, pick a method, and white balance ``image``.

    Never raises: an empty image or an unexpected failure returns the error
    fallback, and implausible gains return the uncorrected fallback.
    """
    config = config or DEFAULT_ENGINE_CONFIG.awb
    start = time.perf_counter()

    if image.is_empty:
        return generate_error_awb_fallback("Cannot white balance an empty image", elapsed_ms(start))

    try:
        mask = clean_skin_mask(detect_skin_mask(image, config.skin_detection), config.clean_iterations)
        skin = SkinDetectionSummary(
            detected=mask.skin_pixel_count > 0 and mask.skin_ratio >= config.skin_detection_min_ratio,
            coverage=mask.skin_ratio,
            mask=mask,
        )
        correction = select_and_apply_awb(image, config, skin_mask=mask, reference_white=reference_white)
    except Exception as exc:
        logger.exception("White balance failed")
        return generate_error_awb_fallback(str(exc) or type(exc).__name__, elapsed_ms(start))

    if correction is None:
        logger.warning("No plausible white balance gains, returning uncorrected image")
        return generate_awb_fallback(elapsed_ms(start), DegradedReason.IMPLAUSIBLE_GAINS, skin)

    processing_time = elapsed_ms(start)
    logger.debug(
        "White balance %s applied (gains=%.3f/%.3f/%.3f, %.0fK -> %.0fK, %.1fms)",
        correction.method,
        correction.gains.r,
        correction.gains.g,
        correction.gains.b,
        correction.original_cct,
        correction.corrected_cct,
        processing_time,
    )
    return AWBResult(
        success=True,
        correction_applied=correction.method != AWBMethod.NONE,
        result=correction,
        skin_detection=skin,
        metadata=AWBMetadata(
            processing_time=processing_time,
            method_used=correction.method,
            confidence=correction.confidence,
        ),
    )


async def process_awb_correction_with_timeout(
    image: RawImageBuffer,
    config: AWBConfig | None = None,
    timeout_ms: float = PROCESSING_TIMEOUT_MS["awb"],
    *,
    reference_white: RGB | None = None,
    pool: WorkerPool | None = None,
) -> AWBResult:
    """Race ``process_awb_correction`` on a worker thread against ``timeout_ms``.

    On timeout the worker's result is discarded and the uncorrected fallback is
    returned. Work runs on ``pool`` when given, otherwise on the loop's default
    executor.
    """
    start = time.perf_counter()
    work = functools.partial(process_awb_correction, image, config, reference_white=reference_white)
    try:
        if pool is not None:
            return await asyncio.wait_for(pool.run(work), timeout=timeout_ms / 1000.0)
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(None, work), timeout=timeout_ms / 1000.0)
    except TimeoutError:
        logger.warning("White balance exceeded %.0fms, using fallback", timeout_ms)
        return generate_awb_fallback(elapsed_ms(start), DegradedReason.TIMEOUT)
    except Exception as exc:
        logger.exception("White balance worker failed")
        return generate_error_awb_fallback(str(exc) or type(exc).__name__, elapsed_ms(start))
