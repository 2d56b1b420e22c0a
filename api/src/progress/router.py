"""Student progress API endpoints.

Provides routes for:
- Lesson completion (and un-completion)
- Course progress queries
- Admin recomputation of roll-ups
"""

from uuid import UUID

from fastapi import APIRouter

from src.auth.dependencies import AdminUser, CurrentUser
from src.auth.schemas import AuthenticatedUser
from src.authorization.dependencies import AutoChainDep, EvaluatorDep
from src.authorization.evaluator import AuthorizationEvaluator
from src.core.exceptions import ForbiddenError

from .dependencies import ProgressAggregatorDep
from .schemas import (
    CourseProgressResponse,
    CourseProgressSummary,
    LessonCompletionRequest,
    LessonCompletionResponse,
    LessonProgressResponse,
    ModuleProgressResponse,
    RecomputeProgressRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])
admin_router = APIRouter(prefix="/v1/admin/progress", tags=["admin-progress"])


# ==============================================================================
# Access Validation Helper
# ==============================================================================


async def ensure_lesson_open(
    evaluator: AuthorizationEvaluator,
    user: AuthenticatedUser,
    lesson_id: UUID,
    course_id: UUID | None,
) -> None:
    """Validate the user may open the lesson before recording progress.

    Access hierarchy:
    1. Admin: Always allowed
    2. Learner: Subject within the track, and the lesson unlocked

    Raises:
        ForbiddenError: Subject outside the track or lesson still locked
    """
    if user.is_admin:
        return

    _, module = await evaluator.catalog.locate_lesson(lesson_id, course_id)
    await evaluator.ensure_eligible(user.id, module.course_id)

    decision = await evaluator.evaluate(user.id, module.course_id, lesson_id)
    if not decision.permitted:
        raise ForbiddenError("Aula ainda nao liberada para voce")


# ==============================================================================
# Lesson Completion Endpoints
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/completion",
    response_model=LessonCompletionResponse,
    summary="Mark lesson completion",
)
async def record_lesson_completion(
    lesson_id: UUID,
    data: LessonCompletionRequest,
    aggregator: ProgressAggregatorDep,
    evaluator: EvaluatorDep,
    auto_chain: AutoChainDep,
    user: CurrentUser,
) -> LessonCompletionResponse:
    """Mark a lesson completed (or not) and return the updated roll-ups.

    Completing a lesson queues a request for the next one in the
    background; the response does not wait for it.
    """
    await ensure_lesson_open(evaluator, user, lesson_id, data.course_id)

    result = await aggregator.record_completion(
        user.id, lesson_id, data.completed, course_id=data.course_id
    )

    if data.completed and auto_chain is not None:
        auto_chain.schedule(user.id, result.lesson_progress.course_id, lesson_id)

    return LessonCompletionResponse(
        lesson_progress=LessonProgressResponse.from_entity(result.lesson_progress),
        module_progress=ModuleProgressResponse.from_entity(result.module_progress),
        course_progress=CourseProgressSummary.from_entity(result.course_progress),
        course_finished=result.course_finished,
    )


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/courses/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    aggregator: ProgressAggregatorDep,
    user: CurrentUser,
) -> CourseProgressResponse:
    """Course percentage and the percentage of each active module."""
    return await aggregator.get_course_progress(user.id, course_id)


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.post(
    "/recompute",
    response_model=CourseProgressResponse,
    summary="Recompute a user's course progress",
)
async def recompute_progress(
    data: RecomputeProgressRequest,
    aggregator: ProgressAggregatorDep,
    _admin: AdminUser,
) -> CourseProgressResponse:
    """Rebuild module and course roll-ups from the lesson rows."""
    return await aggregator.recompute_all(data.user_id, data.course_id)
