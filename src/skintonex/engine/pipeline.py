"""Four-stage analysis pipeline: quality gate, face region, white balance, tone.

Stages run strictly in order and each consumes the previous stage's output:
the face crop feeds white balance, the corrected crop feeds tone analysis,
and the white balance skin mask is reused by the tone stage when the
dimensions still match. Each stage is bounded by its own time budget and
degrades to its fallback instead of failing the whole run.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from skintonex.engine.awb.processor import process_awb_correction_with_timeout
from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, PROCESSING_TIMEOUT_MS, REJECTION_CONFIDENCE
from skintonex.engine.quality.fallback import generate_quality_fallback
from skintonex.engine.quality.validator import assess_image_quality
from skintonex.engine.region.fallback import generate_region_fallback
from skintonex.engine.region.processor import process_face_region
from skintonex.engine.timing import elapsed_ms
from skintonex.engine.tone.analyzer import analyze_skin_tone
from skintonex.engine.tone.fallback import generate_tone_fallback
from skintonex.engine.types import DegradedReason, PipelineStage, ResultSource
from skintonex.schemas import PipelineResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from skintonex.engine.constants import EngineConfig
    from skintonex.engine.tone.cache import ClassificationCache
    from skintonex.engine.types import RGB, DetectedFace, RawImageBuffer, SkinMask
    from skintonex.schemas import AWBResult, QualityReport, RegionResult, ToneAnalysisResult
    from skintonex.workers import WorkerPool

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.QUALITY,
    PipelineStage.REGION,
    PipelineStage.AWB,
    PipelineStage.TONE,
)

DEFAULT_REJECTION_REASON = "Image quality is too low for skin tone analysis"


@dataclass(frozen=True)
class PipelineOptions:
    """Per-run behavior that is not part of the color-science configuration."""

    continue_on_quality_failure: bool = False
    # Milliseconds per stage, keyed by stage name
    stage_timeouts_ms: dict[str, float] = field(default_factory=lambda: dict(PROCESSING_TIMEOUT_MS))
    # Captured color of a neutral reference surface; enables von Kries adaptation
    reference_white: RGB | None = None
    cache: ClassificationCache | None = None

    def timeout_for(self, stage: PipelineStage) -> float:
        return self.stage_timeouts_ms.get(str(stage), PROCESSING_TIMEOUT_MS[str(stage)])


async def _offload(pool: WorkerPool | None, timeout_ms: float, func: Callable[[], T]) -> T:
    """Run ``func`` off the event loop, bounded by ``timeout_ms``.

    Raises:
        TimeoutError: If the budget is exhausted, including time spent queued.
    """
    if pool is not None:
        return await asyncio.wait_for(pool.run(func), timeout=timeout_ms / 1000.0)
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(loop.run_in_executor(None, func), timeout=timeout_ms / 1000.0)


def _first_degraded(
    *results: QualityReport | RegionResult | AWBResult | ToneAnalysisResult | None,
) -> DegradedReason | None:
    for result in results:
        if result is not None and result.is_degraded:
            return result.degraded_reason or DegradedReason.ERROR
    return None


def _first_error(
    region: RegionResult | None,
    awb: AWBResult | None,
    tone: ToneAnalysisResult | None,
) -> str | None:
    if region is not None and not region.success:
        return region.feedback
    if awb is not None and not awb.success:
        return awb.error
    if tone is not None and not tone.success:
        return tone.error
    return None


async def _run_stages(
    image: RawImageBuffer,
    face: DetectedFace | None,
    config: EngineConfig,
    options: PipelineOptions,
    pool: WorkerPool | None,
) -> PipelineResult:
    start = time.perf_counter()
    executed: list[PipelineStage] = []
    stage_times: dict[PipelineStage, float] = {}

    # -- Quality gate --------------------------------------------------------
    stage_start = time.perf_counter()
    try:
        quality = await _offload(
            pool,
            options.timeout_for(PipelineStage.QUALITY),
            functools.partial(assess_image_quality, image, config.quality),
        )
    except TimeoutError:
        logger.warning("Quality gate timed out, using fallback")
        quality = generate_quality_fallback(elapsed_ms(stage_start), DegradedReason.TIMEOUT)
    executed.append(PipelineStage.QUALITY)
    stage_times[PipelineStage.QUALITY] = elapsed_ms(stage_start)

    if not quality.is_acceptable and not options.continue_on_quality_failure:
        reason = quality.primary_issue or DEFAULT_REJECTION_REASON
        logger.info("Image rejected by quality gate: %s", reason)
        return PipelineResult(
            success=False,
            quality=quality,
            rejection_reason=reason,
            executed_stages=tuple(executed),
            skipped_stages=STAGE_ORDER[1:],
            stage_times=stage_times,
            overall_quality=quality.overall_score,
            overall_confidence=quality.confidence,
            processing_time=elapsed_ms(start),
            source=ResultSource.REJECTED,
            degraded_reason=DegradedReason.INVALID_INPUT,
        )

    # -- Face region ---------------------------------------------------------
    working = image
    region: RegionResult | None = None
    skipped: list[PipelineStage] = []
    if face is None:
        skipped.append(PipelineStage.REGION)
    else:
        stage_start = time.perf_counter()
        try:
            region = await _offload(
                pool,
                options.timeout_for(PipelineStage.REGION),
                functools.partial(process_face_region, image, face, config.region),
            )
        except TimeoutError:
            logger.warning("Face region extraction timed out, using full frame")
            region = generate_region_fallback(elapsed_ms(stage_start), DegradedReason.TIMEOUT)
        executed.append(PipelineStage.REGION)
        stage_times[PipelineStage.REGION] = elapsed_ms(stage_start)
        if region.region is not None and not region.region.image_data.is_empty:
            working = region.region.image_data

    # -- White balance -------------------------------------------------------
    stage_start = time.perf_counter()
    awb = await process_awb_correction_with_timeout(
        working,
        config.awb,
        options.timeout_for(PipelineStage.AWB),
        reference_white=options.reference_white,
        pool=pool,
    )
    executed.append(PipelineStage.AWB)
    stage_times[PipelineStage.AWB] = elapsed_ms(stage_start)
    if awb.result is not None and not awb.result.corrected_image.is_empty:
        working = awb.result.corrected_image
    skin_mask: SkinMask | None = awb.skin_detection.mask

    # -- Tone ----------------------------------------------------------------
    stage_start = time.perf_counter()
    try:
        tone = await _offload(
            pool,
            options.timeout_for(PipelineStage.TONE),
            functools.partial(
                analyze_skin_tone,
                working,
                skin_mask,
                config.tone,
                skin_thresholds=config.awb.skin_detection,
                cache=options.cache,
            ),
        )
    except TimeoutError:
        logger.warning("Tone analysis timed out, using fallback")
        tone = generate_tone_fallback(elapsed_ms(stage_start), DegradedReason.TIMEOUT)
    executed.append(PipelineStage.TONE)
    stage_times[PipelineStage.TONE] = elapsed_ms(stage_start)

    confidences = [quality.confidence, awb.confidence, tone.confidence]
    if region is not None:
        confidences.append(region.confidence)

    success = tone.success and awb.success and (region is None or region.success)
    degraded = _first_degraded(quality, region, awb, tone)
    if not success:
        source = ResultSource.REJECTED
        degraded = degraded or DegradedReason.ERROR
    elif degraded is not None:
        source = ResultSource.PARTIAL
    else:
        source = ResultSource.MEASURED

    result = PipelineResult(
        success=success,
        quality=quality,
        region=region,
        awb=awb,
        tone=tone,
        error=_first_error(region, awb, tone),
        executed_stages=tuple(executed),
        skipped_stages=tuple(skipped),
        stage_times=stage_times,
        overall_quality=quality.overall_score,
        overall_confidence=sum(confidences) / len(confidences),
        processing_time=elapsed_ms(start),
        source=source,
        degraded_reason=degraded,
    )
    logger.debug(
        "Pipeline finished: tone=%s confidence=%.2f source=%s (%.1fms)",
        tone.classification.tone,
        result.overall_confidence,
        result.source,
        result.processing_time,
    )
    return result


async def run_pipeline(
    image: RawImageBuffer,
    face: DetectedFace | None = None,
    *,
    config: EngineConfig | None = None,
    options: PipelineOptions | None = None,
    pool: WorkerPool | None = None,
) -> PipelineResult:
    """Run all four stages over ``image``.

    Args:
        image: Full RGB frame.
        face: Detection for the subject's face. Without it the region stage is
            skipped and the whole frame is analyzed.
        config: Engine tunables; defaults to ``DEFAULT_ENGINE_CONFIG``.
        options: Per-run behavior and stage time budgets.
        pool: Worker pool for the numpy work; the loop's default executor
            is used when omitted.

    Returns:
        The per-stage results with execution bookkeeping. Never raises;
        unexpected failures produce a failed result with ``error`` set.
    """
    config = config or DEFAULT_ENGINE_CONFIG
    options = options or PipelineOptions()
    start = time.perf_counter()
    try:
        return await _run_stages(image, face, config, options, pool)
    except Exception as exc:
        logger.exception("Pipeline failed")
        return PipelineResult(
            success=False,
            error=str(exc) or type(exc).__name__,
            skipped_stages=STAGE_ORDER,
            overall_confidence=REJECTION_CONFIDENCE,
            processing_time=elapsed_ms(start),
            source=ResultSource.REJECTED,
            degraded_reason=DegradedReason.ERROR,
        )


async def run_pipeline_with_timeout(
    image: RawImageBuffer,
    face: DetectedFace | None = None,
    *,
    timeout_ms: float = PROCESSING_TIMEOUT_MS["total"],
    config: EngineConfig | None = None,
    options: PipelineOptions | None = None,
    pool: WorkerPool | None = None,
) -> PipelineResult:
    """``run_pipeline`` bounded by a total budget.

    On timeout the run is cancelled and a failed result tagged ``timeout`` is
    returned. Work already handed to a worker thread finishes in the
    background and is discarded.
    """
    start = time.perf_counter()
    try:
        return await asyncio.wait_for(
            run_pipeline(image, face, config=config, options=options, pool=pool),
            timeout=timeout_ms / 1000.0,
        )
    except TimeoutError:
        logger.warning("Pipeline exceeded %.0fms", timeout_ms)
        return PipelineResult(
            success=False,
            error=f"Analysis exceeded {timeout_ms:.0f}ms",
            skipped_stages=STAGE_ORDER,
            overall_confidence=REJECTION_CONFIDENCE,
            processing_time=elapsed_ms(start),
            source=ResultSource.REJECTED,
            degraded_reason=DegradedReason.TIMEOUT,
        )
