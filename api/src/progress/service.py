"""Progress roll-up service.

Business logic for:
- Recording lesson completion (and un-completion)
- Recomputing module and course percentages from lesson rows
- Progress queries

Roll-ups always start from the full set of lesson_progress rows, never from
the previous percentage, so re-running them converges to the right value
no matter how concurrent completions interleaved.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import CourseProgress, LessonProgress, ModuleProgress
from .schemas import CourseProgressResponse, ModulePercentage


if TYPE_CHECKING:
    from src.catalog.service import CatalogReader

    from .store import ProgressStore


logger = structlog.get_logger(__name__)


@dataclass
class CompletionResult:
    """Outcome of a completion event: the three rows written, in order.

    ``course_finished`` is set when the completed lesson has no next lesson
    in course order, whatever the percentage says.
    """

    lesson_progress: LessonProgress
    module_progress: ModuleProgress
    course_progress: CourseProgress
    course_finished: bool = False


class ProgressAggregator:
    """Records completions and keeps module/course roll-ups in sync."""

    def __init__(self, store: "ProgressStore", catalog: "CatalogReader"):
        self.store = store
        self.catalog = catalog

    # ==========================================================================
    # Completion
    # ==========================================================================

    async def record_completion(
        self,
        user_id: UUID,
        lesson_id: UUID,
        completed: bool,
        course_id: UUID | None = None,
    ) -> CompletionResult:
        """Upsert lesson progress, then recompute its module, then its course.

        A repeated completion keeps the original ``completed_at`` so the
        stored rows are identical to a single completion.

        Raises:
            NotFoundError: Unknown lesson or module
            ValidationError: Lesson outside ``course_id`` (when given)
            StorageUnavailableError: Storage timed out; safe to retry
        """
        lesson, module = await self.catalog.locate_lesson(lesson_id, course_id)
        course_id = module.course_id

        existing = await self.store.get_lesson_progress(
            user_id, course_id, module.id, lesson.id
        )
        was_completed = bool(existing and existing.completed)

        completed_at = None
        if completed:
            completed_at = (
                existing.completed_at
                if was_completed and existing.completed_at
                else datetime.now(UTC)
            )

        progress = LessonProgress(
            user_id=user_id,
            course_id=course_id,
            module_id=module.id,
            lesson_id=lesson.id,
            completed=completed,
            completed_at=completed_at,
        )
        await self.store.save_lesson_progress(progress)

        module_progress = await self.recompute_module(user_id, course_id, module.id)
        course_progress = await self.recompute_course(user_id, course_id)
        course_finished = (
            completed and await self.catalog.next_lesson_after(lesson, module) is None
        )

        logger.info(
            "lesson_completion_recorded",
            user_id=str(user_id),
            lesson_id=str(lesson.id),
            completed=completed,
            module_percentage=module_progress.percentage,
            course_percentage=course_progress.percentage,
            course_finished=course_finished,
        )

        return CompletionResult(
            lesson_progress=progress,
            module_progress=module_progress,
            course_progress=course_progress,
            course_finished=course_finished,
        )

    # ==========================================================================
    # Roll-up
    # ==========================================================================

    async def recompute_module(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress:
        """Recompute and store the module percentage over its active lessons."""
        lessons = await self.catalog.list_active_lessons(module_id)
        active_ids = {lesson.id for lesson in lessons}

        rows = await self.store.list_lesson_progress(user_id, course_id, module_id)
        completed = sum(1 for lp in rows if lp.completed and lp.lesson_id in active_ids)

        progress = ModuleProgress.compute(
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            lessons_completed=completed,
            lessons_total=len(active_ids),
        )
        await self.store.save_module_progress(progress)
        return progress

    async def recompute_course(self, user_id: UUID, course_id: UUID) -> CourseProgress:
        """Recompute and store the course percentage over all active modules."""
        modules = await self.catalog.list_active_modules(course_id)
        rows = await self.store.list_lesson_progress(user_id, course_id)
        completed_ids = {lp.lesson_id for lp in rows if lp.completed}

        total = 0
        completed = 0
        for module in modules:
            lessons = await self.catalog.list_active_lessons(module.id)
            total += len(lessons)
            completed += sum(1 for lesson in lessons if lesson.id in completed_ids)

        progress = CourseProgress.compute(
            user_id=user_id,
            course_id=course_id,
            lessons_completed=completed,
            lessons_total=total,
        )
        await self.store.save_course_progress(progress)
        return progress

    async def recompute_all(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgressResponse:
        """Rebuild every module roll-up and the course roll-up of a user.

        Used to recover after a failure between the ordered writes of
        ``record_completion``.
        """
        await self.catalog.require_course(course_id)
        for module in await self.catalog.list_active_modules(course_id):
            await self.recompute_module(user_id, course_id, module.id)
        await self.recompute_course(user_id, course_id)

        logger.info(
            "course_progress_recomputed",
            user_id=str(user_id),
            course_id=str(course_id),
        )
        return await self.get_course_progress(user_id, course_id)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgressResponse:
        """Stored course percentage plus each active module's percentage.

        Modules never touched by the user report 0.
        """
        await self.catalog.require_course(course_id)
        modules = await self.catalog.list_active_modules(course_id)
        stored = {
            mp.module_id: mp.percentage
            for mp in await self.store.list_module_progress(user_id, course_id)
        }
        course = await self.store.get_course_progress(user_id, course_id)

        return CourseProgressResponse(
            course_id=course_id,
            percentage=course.percentage if course else 0,
            lessons_completed=course.lessons_completed if course else 0,
            lessons_total=course.lessons_total if course else 0,
            modules=[
                ModulePercentage(
                    module_id=module.id,
                    percentage=stored.get(module.id, 0),
                )
                for module in modules
            ],
        )
