"""Next-lesson auto-chain with background processing.

When a learner completes a lesson, the next lesson in course order is
requested on their behalf (origin ``automatic``). Jobs are queued with
``put_nowait`` from the request task and handled by a worker task owned by
the application, so the completion response never waits on them and a
cancelled request does not cancel its job.

Failures are logged and never retried; the learner can always submit a
manual request.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from src.core.context import RequestContext, get_request_id

from .models import RequestOrigin


if TYPE_CHECKING:
    from uuid import UUID

    from src.catalog.models import Lesson
    from src.catalog.service import CatalogReader

    from .evaluator import AuthorizationEvaluator
    from .workflow import RequestWorkflow, SubmissionResult


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChainJob:
    """A completed lesson whose successor should be requested."""

    user_id: UUID
    course_id: UUID
    lesson_id: UUID
    correlation_id: str | None = None
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AutoChainTrigger:
    """Requests the next lesson after a completion, off the request path."""

    def __init__(
        self,
        workflow: RequestWorkflow,
        evaluator: AuthorizationEvaluator,
        catalog: CatalogReader,
        queue_size: int = 1000,
        stop_timeout: float = 5.0,
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the trigger.

        Args:
            workflow: Used to submit the automatic request
            evaluator: Skips lessons the learner can already open
            catalog: Course structure lookups
            queue_size: Maximum queued jobs (jobs dropped when full)
            stop_timeout: Seconds to wait for the worker on shutdown
            poll_interval: Seconds between checks of the running flag
        """
        self.workflow = workflow
        self.evaluator = evaluator
        self.catalog = catalog
        self.queue_size = queue_size
        self.stop_timeout = stop_timeout
        self.poll_interval = poll_interval

        self._queue: asyncio.Queue[ChainJob] = asyncio.Queue(maxsize=queue_size)
        self._running = False
        self._worker_task: asyncio.Task | None = None
        self._start_time: float = 0.0

        # Counters for monitoring
        self._jobs_scheduled = 0
        self._jobs_dropped = 0
        self._jobs_processed = 0
        self._jobs_failed = 0
        self._requests_created = 0

    # ==========================================================================
    # Scheduling (non-blocking)
    # ==========================================================================

    def schedule(self, user_id: UUID, course_id: UUID, lesson_id: UUID) -> bool:
        """Queue a job for a completed lesson.

        Returns:
            True if queued, False if dropped
        """
        job = ChainJob(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            correlation_id=get_request_id() or None,
        )
        try:
            self._queue.put_nowait(job)
            self._jobs_scheduled += 1
            return True
        except asyncio.QueueFull:
            self._jobs_dropped += 1
            logger.warning(
                "auto_chain_queue_full",
                lesson_id=str(lesson_id),
                queue_size=self.queue_size,
                dropped_total=self._jobs_dropped,
            )
            return False

    # ==========================================================================
    # Processing
    # ==========================================================================

    async def process(self, job: ChainJob) -> SubmissionResult | None:
        """Handle one job. Never raises.

        Returns:
            The submission result, or None when nothing was submitted
        """
        with RequestContext(user_id=job.user_id, correlation_id=job.correlation_id):
            try:
                return await self._process(job)
            except Exception:
                self._jobs_failed += 1
                logger.exception(
                    "auto_chain_failed",
                    course_id=str(job.course_id),
                    lesson_id=str(job.lesson_id),
                )
                return None
            finally:
                self._jobs_processed += 1

    async def _process(self, job: ChainJob) -> SubmissionResult | None:
        next_lesson = await self.find_next_lesson(job.lesson_id)
        if next_lesson is None:
            logger.info(
                "auto_chain_course_finished",
                course_id=str(job.course_id),
                lesson_id=str(job.lesson_id),
            )
            return None

        decision = await self.evaluator.evaluate(
            job.user_id, job.course_id, next_lesson.id
        )
        if decision.permitted:
            logger.debug(
                "auto_chain_next_already_open",
                next_lesson_id=str(next_lesson.id),
                reason=decision.reason.value,
            )
            return None

        result = await self.workflow.submit(
            job.user_id,
            job.course_id,
            next_lesson.id,
            origin=RequestOrigin.AUTOMATIC,
        )
        if result.created:
            self._requests_created += 1

        logger.info(
            "auto_chain_requested",
            next_lesson_id=str(next_lesson.id),
            request_id=str(result.request_id),
            created=result.created,
        )
        return result

    async def find_next_lesson(self, lesson_id: UUID) -> Lesson | None:
        """Next active lesson in course order, or None after the last one."""
        lesson, module = await self.catalog.locate_lesson(lesson_id)
        return await self.catalog.next_lesson_after(lesson, module)

    async def drain(self) -> int:
        """Process every queued job now. Returns how many were handled."""
        handled = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self.process(job)
            self._queue.task_done()
            handled += 1
        return handled

    # ==========================================================================
    # Background Worker
    # ==========================================================================

    async def start(self) -> None:
        """Start the background worker."""
        if self._running:
            logger.warning("auto_chain_already_running")
            return

        self._running = True
        self._start_time = time.monotonic()
        self._worker_task = asyncio.create_task(
            self._worker_loop(),
            name="auto_chain_worker",
        )
        logger.info("auto_chain_started", queue_size=self.queue_size)

    async def stop(self) -> None:
        """Stop the worker, then handle what is still queued."""
        if not self._running:
            return

        self._running = False

        if self._worker_task:
            try:
                await asyncio.wait_for(self._worker_task, timeout=self.stop_timeout)
            except TimeoutError:
                logger.warning("auto_chain_worker_stop_timeout")
                self._worker_task.cancel()
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        if not self._queue.empty():
            logger.info("auto_chain_draining", count=self._queue.qsize())
            try:
                await asyncio.wait_for(self.drain(), timeout=self.stop_timeout)
            except TimeoutError:
                logger.warning("auto_chain_drain_timeout", left=self._queue.qsize())

        logger.info(
            "auto_chain_stopped",
            jobs_scheduled=self._jobs_scheduled,
            jobs_processed=self._jobs_processed,
            jobs_failed=self._jobs_failed,
            jobs_dropped=self._jobs_dropped,
        )

    async def _worker_loop(self) -> None:
        while self._running:
            try:
                try:
                    job = await asyncio.wait_for(
                        self._queue.get(),
                        timeout=self.poll_interval,
                    )
                except TimeoutError:
                    continue

                await self.process(job)
                self._queue.task_done()

            except asyncio.CancelledError:
                raise

            except Exception:
                logger.exception("auto_chain_worker_error")
                await asyncio.sleep(0.1)

    # ==========================================================================
    # Status/Monitoring
    # ==========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_length(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> dict:
        """Get trigger statistics for monitoring."""
        return {
            "running": self._running,
            "queue_size": self.queue_size,
            "queue_length": self._queue.qsize(),
            "jobs_scheduled": self._jobs_scheduled,
            "jobs_processed": self._jobs_processed,
            "jobs_failed": self._jobs_failed,
            "jobs_dropped": self._jobs_dropped,
            "requests_created": self._requests_created,
            "uptime_seconds": (
                time.monotonic() - self._start_time if self._running else 0.0
            ),
        }
