"""Tests for the service facade, its lifespan, and the worker pool."""

from __future__ import annotations

import asyncio
import logging
import threading
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from skintonex.config import Settings
from skintonex.engine.face_detector import select_primary_face
from skintonex.engine.types import BoundingBox, DetectedFace, PipelineStage, RawImageBuffer
from skintonex.main import ToneAnalysisService, configure_logging, lifespan
from skintonex.workers import WorkerPool

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    return Settings(**overrides)  # type: ignore[arg-type]


def _make_skin_image() -> RawImageBuffer:
    yy, xx = np.indices((240, 320))
    even = ((xx + yy) % 2 == 0)[:, :, None]
    pixels = np.where(even, (140, 140, 140), (100, 100, 100))
    patch = (slice(60, 180), slice(80, 240))
    pixels[patch] = np.where(even, (220, 180, 150), (180, 140, 110))[patch]
    return RawImageBuffer(pixels.astype(np.uint8))


class FakeDetector:
    """Returns canned detections."""

    def __init__(self, faces: list[DetectedFace]) -> None:
        self._faces = faces
        self.calls = 0

    @property
    def model_name(self) -> str:
        return "fake-detector"

    def detect(self, image: RawImageBuffer) -> list[DetectedFace]:
        self.calls += 1
        return list(self._faces)


# ---------------------------------------------------------------------------
# Face selection
# ---------------------------------------------------------------------------


class TestSelectPrimaryFace:
    def test_no_faces(self) -> None:
        assert select_primary_face([]) is None

    def test_highest_confidence_wins(self) -> None:
        small = DetectedFace(BoundingBox(0, 0, 10, 10), confidence=0.9)
        large = DetectedFace(BoundingBox(0, 0, 100, 100), confidence=0.5)
        assert select_primary_face([large, small]) is small

    def test_tie_goes_to_larger_box(self) -> None:
        small = DetectedFace(BoundingBox(0, 0, 10, 10), confidence=0.8)
        large = DetectedFace(BoundingBox(0, 0, 50, 50), confidence=0.8)
        assert select_primary_face([small, large]) is large


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestToneAnalysisService:
    async def test_analyze(self) -> None:
        service = ToneAnalysisService(_make_settings())
        try:
            result = await service.analyze(_make_skin_image())
        finally:
            service.shutdown()
        assert result.success is True
        assert result.tone is not None

    async def test_analyze_with_detector_uses_best_face(self) -> None:
        detector = FakeDetector(
            [
                DetectedFace(BoundingBox(10, 10, 40, 40), confidence=0.4),
                DetectedFace(BoundingBox(100, 60, 100, 100), confidence=0.95),
            ]
        )
        service = ToneAnalysisService(_make_settings())
        try:
            result = await service.analyze_with_detector(_make_skin_image(), detector)
        finally:
            service.shutdown()
        assert detector.calls == 1
        assert result.region is not None
        assert result.region.region is not None
        assert result.region.region.bounding_box == BoundingBox(80, 40, 140, 140)

    async def test_analyze_with_detector_without_faces(self, caplog: pytest.LogCaptureFixture) -> None:
        service = ToneAnalysisService(_make_settings())
        try:
            with caplog.at_level(logging.INFO, logger="skintonex.main"):
                result = await service.analyze_with_detector(_make_skin_image(), FakeDetector([]))
        finally:
            service.shutdown()
        assert PipelineStage.REGION in result.skipped_stages
        assert "fake-detector found no face" in caplog.text

    async def test_settings_control_quality_gate(self) -> None:
        blurry = RawImageBuffer.filled(320, 240, (128, 128, 128))
        strict = ToneAnalysisService(_make_settings())
        lenient = ToneAnalysisService(_make_settings(continue_on_quality_failure=True))
        try:
            rejected = await strict.analyze(blurry)
            analyzed = await lenient.analyze(blurry)
        finally:
            strict.shutdown()
            lenient.shutdown()
        assert rejected.tone is None
        assert analyzed.tone is not None

    async def test_pool_counters_are_idle_after_run(self) -> None:
        service = ToneAnalysisService(_make_settings())
        try:
            await service.analyze(_make_skin_image())
            assert service.active_count == 0
            assert service.queue_depth == 0
        finally:
            service.shutdown()


class TestLifespan:
    async def test_yields_ready_service(self) -> None:
        async with lifespan(_make_settings()) as service:
            result = await service.analyze(_make_skin_image())
        assert result.success is True

    @patch("skintonex.main.ToneAnalysisService")
    async def test_shuts_down_on_error(self, mock_service_cls: MagicMock) -> None:
        with pytest.raises(RuntimeError, match="request failed"):
            async with lifespan(_make_settings()):
                raise RuntimeError("request failed")
        mock_service_cls.return_value.shutdown.assert_called_once()

    @patch("skintonex.main.logging.basicConfig")
    def test_configure_logging(self, mock_basic_config: MagicMock) -> None:
        configure_logging(_make_settings(log_level="DEBUG"))
        assert mock_basic_config.call_args.kwargs["level"] == "DEBUG"


# ---------------------------------------------------------------------------
# Worker pool
# ---------------------------------------------------------------------------


class TestWorkerPool:
    async def test_runs_function_with_arguments(self) -> None:
        pool = WorkerPool(_make_settings(max_concurrent=1))
        try:
            assert await pool.run(pow, 2, 10) == 1024
        finally:
            pool.shutdown()

    async def test_runs_on_worker_thread(self) -> None:
        pool = WorkerPool(_make_settings(max_concurrent=1))
        try:
            name = await pool.run(lambda: threading.current_thread().name)
        finally:
            pool.shutdown()
        assert name.startswith("skintonex-worker")

    async def test_saturated_pool_times_out(self) -> None:
        pool = WorkerPool(_make_settings(max_concurrent=1, queue_timeout_seconds=0.05))
        release = threading.Event()
        try:
            blocker = asyncio.create_task(pool.run(release.wait, 5.0))
            await asyncio.sleep(0.05)
            assert pool.active_count == 1
            with pytest.raises(TimeoutError):
                await pool.run(pow, 2, 2)
        finally:
            release.set()
            await blocker
            pool.shutdown()
        assert pool.queue_depth == 0

    async def test_cancelled_caller_keeps_slot_until_job_finishes(self) -> None:
        pool = WorkerPool(_make_settings(max_concurrent=1, queue_timeout_seconds=0.2))
        release = threading.Event()
        try:
            with pytest.raises(TimeoutError):
                await asyncio.wait_for(pool.run(release.wait, 5.0), timeout=0.05)
            assert pool.active_count == 1
            with pytest.raises(TimeoutError):
                await pool.run(pow, 2, 2)
            release.set()
            assert await pool.run(pow, 2, 3) == 8
            assert pool.active_count == 0
        finally:
            release.set()
            pool.shutdown()

    async def test_job_failure_reaches_caller_and_frees_slot(self) -> None:
        pool = WorkerPool(_make_settings(max_concurrent=1))
        try:
            with pytest.raises(ZeroDivisionError):
                await pool.run(divmod, 1, 0)
            assert pool.active_count == 0
            assert await pool.run(pow, 2, 2) == 4
        finally:
            pool.shutdown()
