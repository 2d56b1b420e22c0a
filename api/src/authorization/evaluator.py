"""Lesson access evaluation.

Two independent layers guard a lesson:

1. Eligibility: the user's track must be allowed to see the course subject
   (``ensure_eligible``, checked at the HTTP boundary).
2. Unlock: the lesson must be completed already or covered by an active
   grant (``evaluate``).
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.core.exceptions import ForbiddenError
from src.policy import CourseAccessPolicy

from .models import GrantKind


if TYPE_CHECKING:
    from src.catalog.models import Course, User
    from src.catalog.service import CatalogReader
    from src.progress.store import ProgressStore

    from .store import AuthorizationGrantStore


logger = structlog.get_logger(__name__)


class AccessReason(str, Enum):
    ALREADY_COMPLETED = "already completed"
    COURSE_UNLOCKED = "course fully unlocked"
    MODULE_UNLOCKED = "module unlocked"
    LESSON_UNLOCKED = "lesson specifically unlocked"
    NO_AUTHORIZATION = "no authorization"


# Grant kinds in the order they are reported
_GRANT_REASONS = (
    (GrantKind.COURSE, AccessReason.COURSE_UNLOCKED),
    (GrantKind.MODULE, AccessReason.MODULE_UNLOCKED),
    (GrantKind.LESSON, AccessReason.LESSON_UNLOCKED),
)


@dataclass(frozen=True)
class AccessDecision:
    permitted: bool
    reason: AccessReason

    @classmethod
    def allow(cls, reason: AccessReason) -> "AccessDecision":
        return cls(permitted=True, reason=reason)

    @classmethod
    def deny(cls) -> "AccessDecision":
        return cls(permitted=False, reason=AccessReason.NO_AUTHORIZATION)


class AuthorizationEvaluator:
    """Decides whether a user may open a lesson."""

    def __init__(
        self,
        catalog: "CatalogReader",
        grants: "AuthorizationGrantStore",
        progress: "ProgressStore",
        policy: CourseAccessPolicy | None = None,
    ):
        self.catalog = catalog
        self.grants = grants
        self.progress = progress
        self.policy = policy or CourseAccessPolicy()

    async def evaluate(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        now: datetime | None = None,
    ) -> AccessDecision:
        """Evaluate access to a lesson. First match wins.

        Completion is checked before grants: reviewing a finished lesson
        never depends on a grant still being valid.

        Raises:
            NotFoundError: Unknown lesson or module
            ValidationError: Lesson outside the course
        """
        lesson, module = await self.catalog.locate_lesson(lesson_id, course_id)

        progress = await self.progress.get_lesson_progress(
            user_id, course_id, module.id, lesson.id
        )
        if progress and progress.completed:
            return AccessDecision.allow(AccessReason.ALREADY_COMPLETED)

        now = now or datetime.now(UTC)
        grants = [
            grant
            for grant in await self.grants.list_for_user_course(user_id, course_id)
            if grant.is_active(now) and grant.covers(module.id, lesson.id)
        ]

        for kind, reason in _GRANT_REASONS:
            if any(grant.kind == kind for grant in grants):
                return AccessDecision.allow(reason)

        return AccessDecision.deny()

    async def ensure_eligible(
        self, user_id: UUID, course_id: UUID
    ) -> tuple["User", "Course"]:
        """Check that the user may see the course at all.

        Raises:
            NotFoundError: Unknown user or course
            ForbiddenError: Inactive user or course, or subject outside the track
        """
        user = await self.catalog.require_user(user_id)
        course = await self.catalog.require_course(course_id)

        if not user.active:
            raise ForbiddenError("Usuario inativo")
        if not course.active:
            raise ForbiddenError("Curso inativo")

        if not self.policy.allowed(user.track, course.subject):
            logger.info(
                "course_access_denied_by_track",
                user_id=str(user_id),
                course_id=str(course_id),
                track=user.track,
                subject=course.subject,
            )
            raise ForbiddenError("Curso nao disponivel para a sua trilha")

        return user, course
