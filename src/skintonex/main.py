"""Service entry point: logging setup, lifespan, and the analysis facade."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from skintonex.engine.face_detector import FaceDetector
    from skintonex.engine.tone.cache import ClassificationCache
    from skintonex.engine.types import DetectedFace, RawImageBuffer
    from skintonex.schemas import PipelineResult

from skintonex.config import Settings, get_settings
from skintonex.engine.constants import DEFAULT_ENGINE_CONFIG, PROCESSING_TIMEOUT_MS, EngineConfig
from skintonex.engine.face_detector import select_primary_face
from skintonex.engine.pipeline import PipelineOptions, run_pipeline_with_timeout
from skintonex.workers import WorkerPool

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


class ToneAnalysisService:
    """Runs the analysis pipeline on a bounded worker pool."""

    def __init__(
        self,
        settings: Settings,
        config: EngineConfig | None = None,
        cache: ClassificationCache | None = None,
    ) -> None:
        self._settings = settings
        self._config = config or DEFAULT_ENGINE_CONFIG
        self._pool = WorkerPool(settings)
        self._options = PipelineOptions(
            continue_on_quality_failure=settings.continue_on_quality_failure,
            stage_timeouts_ms={**PROCESSING_TIMEOUT_MS, "awb": settings.awb_timeout_ms},
            cache=cache,
        )

    async def analyze(self, image: RawImageBuffer, face: DetectedFace | None = None) -> PipelineResult:
        """Analyze ``image``, using ``face`` to crop when given."""
        return await run_pipeline_with_timeout(
            image,
            face,
            timeout_ms=self._settings.pipeline_timeout_ms,
            config=self._config,
            options=self._options,
            pool=self._pool,
        )

    async def analyze_with_detector(self, image: RawImageBuffer, detector: FaceDetector) -> PipelineResult:
        """Detect faces with ``detector`` and analyze the most confident one.

        Detection runs on the worker pool. When it finds nothing the region
        stage is skipped and the whole frame is analyzed.

        Raises:
            TimeoutError: If the worker pool stays saturated past the queue timeout.
        """
        faces = await self._pool.run(detector.detect, image)
        face = select_primary_face(faces)
        if face is None:
            logger.info("%s found no face, analyzing the full frame", detector.model_name)
        return await self.analyze(image, face)

    @property
    def active_count(self) -> int:
        return self._pool.active_count

    @property
    def queue_depth(self) -> int:
        return self._pool.queue_depth

    def shutdown(self) -> None:
        self._pool.shutdown()


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncIterator[ToneAnalysisService]:
    """Service lifespan: configure, yield a ready service, clean up on exit."""
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info(
        "Starting SkinToneX (config=%s, max_concurrent=%s, pipeline_timeout=%.0fms)",
        DEFAULT_ENGINE_CONFIG.version,
        settings.max_concurrent,
        settings.pipeline_timeout_ms,
    )
    service = ToneAnalysisService(settings)
    logger.info("SkinToneX ready")
    try:
        yield service
    finally:
        logger.info("Shutting down SkinToneX")
        service.shutdown()
        logger.info("SkinToneX shutdown complete")
