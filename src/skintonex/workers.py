"""Bounded worker pool for CPU-bound stage work.

Stages hand numpy work to ``WorkerPool.run``, which queues callers on an
``asyncio.Semaphore`` sized to the thread pool:

    stage (async) -> Semaphore(N) -> ThreadPoolExecutor(N) -> stage function

A slot is held for as long as its worker thread is busy. Stage timeouts cancel
the awaiting task, but a Python thread cannot be interrupted, so the abandoned
job keeps its slot until it returns. Later callers therefore queue instead of
being handed a slot whose thread is still occupied.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from skintonex.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerPool:
    """Runs stage functions on at most ``max_concurrent`` threads."""

    def __init__(self, settings: Settings) -> None:
        self._queue_timeout = settings.queue_timeout_seconds
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="skintonex-worker",
        )
        self._busy = 0
        self._waiting = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread and return its result.

        Cancelling the caller does not free the slot. It is released when the
        worker actually finishes.

        Raises:
            TimeoutError: If no slot frees up within ``queue_timeout_seconds``.
        """
        await self._acquire_slot()
        loop = asyncio.get_running_loop()
        try:
            job = loop.run_in_executor(self._executor, func, *args)
        except BaseException:
            self._release_slot()
            raise
        job.add_done_callback(self._on_job_done)
        return await asyncio.shield(job)

    async def _acquire_slot(self) -> None:
        with self._counter_lock:
            self._waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._queue_timeout)
        except TimeoutError:
            logger.warning("Worker pool saturated for %.1fs", self._queue_timeout)
            raise
        finally:
            with self._counter_lock:
                self._waiting -= 1
        with self._counter_lock:
            self._busy += 1

    def _release_slot(self) -> None:
        with self._counter_lock:
            self._busy -= 1
        self._slots.release()

    def _on_job_done(self, job: asyncio.Future[object]) -> None:
        self._release_slot()
        # Retrieve the exception so jobs whose caller gave up do not warn at GC
        if not job.cancelled() and job.exception() is not None:
            logger.debug("Worker job failed: %r", job.exception())

    @property
    def active_count(self) -> int:
        """Number of worker threads currently busy, abandoned jobs included."""
        with self._counter_lock:
            return self._busy

    @property
    def queue_depth(self) -> int:
        """Number of callers waiting for a slot."""
        with self._counter_lock:
            return self._waiting

    def shutdown(self) -> None:
        """Wait for running jobs, then stop the worker threads."""
        self._executor.shutdown(wait=True)
