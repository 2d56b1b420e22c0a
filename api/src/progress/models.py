"""Database models for student progress.

Cassandra table definitions for:
- Lesson progress: completion flag per user and lesson
- Module progress: percentage of the module's active lessons completed
- Course progress: percentage of the course's active lessons completed

Module and course rows are derived data: they are recomputed from
lesson_progress and never written by clients.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def completion_percentage(completed: int, total: int) -> int:
    """Integer percentage rounded half-up; 0 when there is nothing to complete.

    >>> completion_percentage(1, 3)
    33
    >>> completion_percentage(1, 8)
    13
    """
    if total <= 0:
        return 0
    ratio = Decimal(completed) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progresso de aula por usuario
# Partition key: (user_id, course_id) para recalcular o curso inteiro de uma vez
# Clustering: module_id, lesson_id para ler um modulo por faixa
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    lesson_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), module_id, lesson_id)
) WITH CLUSTERING ORDER BY (module_id ASC, lesson_id ASC)
"""

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    percentage INT,
    lessons_completed INT,
    lessons_total INT,
    PRIMARY KEY ((user_id, course_id), module_id)
)
"""

# Particionado por usuario: "quais cursos o aluno tem progresso?"
COURSE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_progress (
    user_id UUID,
    course_id UUID,
    percentage INT,
    lessons_completed INT,
    lessons_total INT,
    PRIMARY KEY ((user_id), course_id)
)
"""

PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
    MODULE_PROGRESS_TABLE_CQL,
    COURSE_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Completion state of one lesson for one user.

    Attributes:
        user_id: User UUID
        course_id: Course UUID (partition key)
        module_id: Module UUID
        lesson_id: Lesson UUID
        completed: Whether the lesson is completed
        completed_at: First completion timestamp (None when not completed)
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
        completed: bool = False,
        completed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.module_id = module_id
        self.lesson_id = lesson_id
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at) if completed else None

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            completed=bool(row.completed),
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "lesson_id": self.lesson_id,
            "completed": self.completed,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        state = "completed" if self.completed else "pending"
        return f"<LessonProgress user={self.user_id} lesson={self.lesson_id} {state}>"


class ModuleProgress:
    """Module roll-up for a user (derived from lesson progress).

    Attributes:
        user_id: User UUID
        course_id: Course UUID
        module_id: Module UUID
        percentage: Integer percentage in [0, 100]
        lessons_completed: Completed active lessons
        lessons_total: Active lessons in the module
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        percentage: int = 0,
        lessons_completed: int = 0,
        lessons_total: int = 0,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.module_id = module_id
        self.percentage = percentage
        self.lessons_completed = lessons_completed
        self.lessons_total = lessons_total

    @classmethod
    def compute(
        cls,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        lessons_completed: int,
        lessons_total: int,
    ) -> "ModuleProgress":
        return cls(
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            percentage=completion_percentage(lessons_completed, lessons_total),
            lessons_completed=lessons_completed,
            lessons_total=lessons_total,
        )

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            percentage=row.percentage or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "percentage": self.percentage,
            "lessons_completed": self.lessons_completed,
            "lessons_total": self.lessons_total,
        }

    def __repr__(self) -> str:
        return (
            f"<ModuleProgress user={self.user_id} module={self.module_id} "
            f"{self.lessons_completed}/{self.lessons_total} {self.percentage}%>"
        )


class CourseProgress:
    """Course roll-up for a user across all active modules.

    Attributes:
        user_id: User UUID
        course_id: Course UUID
        percentage: Integer percentage in [0, 100]
        lessons_completed: Completed active lessons of active modules
        lessons_total: Active lessons of active modules
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        percentage: int = 0,
        lessons_completed: int = 0,
        lessons_total: int = 0,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.percentage = percentage
        self.lessons_completed = lessons_completed
        self.lessons_total = lessons_total

    @classmethod
    def compute(
        cls,
        user_id: UUID,
        course_id: UUID,
        lessons_completed: int,
        lessons_total: int,
    ) -> "CourseProgress":
        return cls(
            user_id=user_id,
            course_id=course_id,
            percentage=completion_percentage(lessons_completed, lessons_total),
            lessons_completed=lessons_completed,
            lessons_total=lessons_total,
        )

    @classmethod
    def from_row(cls, row: Any) -> "CourseProgress":
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            percentage=row.percentage or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "percentage": self.percentage,
            "lessons_completed": self.lessons_completed,
            "lessons_total": self.lessons_total,
        }

    def __repr__(self) -> str:
        return (
            f"<CourseProgress user={self.user_id} course={self.course_id} "
            f"{self.percentage}%>"
        )
