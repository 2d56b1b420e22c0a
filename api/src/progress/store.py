# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cassandra persistence for lesson, module and course progress."""

from uuid import UUID

from src.core.database.store import CassandraStore

from .models import CourseProgress, LessonProgress, ModuleProgress


class ProgressStore(CassandraStore):
    """Reads and upserts progress rows. Every write is an idempotent upsert."""

    def _prepare_statements(self) -> None:
        # Lesson Progress
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ? AND lesson_id = ?
        """)

        self._get_course_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_module_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (user_id, course_id, module_id, lesson_id, completed, completed_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        # Module Progress
        self._get_course_module_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_module_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress
            (user_id, course_id, module_id, percentage, lessons_completed,
             lessons_total)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        # Course Progress
        self._get_course_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_course_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_progress
            (user_id, course_id, percentage, lessons_completed, lessons_total)
            VALUES (?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Lesson Progress
    # ==========================================================================

    async def get_lesson_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
    ) -> LessonProgress | None:
        result = await self._execute(
            self._get_lesson_progress, [user_id, course_id, module_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def list_lesson_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID | None = None,
    ) -> list[LessonProgress]:
        """All lesson rows of a course, or of one module when given."""
        if module_id is None:
            rows = await self._execute(
                self._get_course_lesson_progress, [user_id, course_id]
            )
        else:
            rows = await self._execute(
                self._get_module_lesson_progress, [user_id, course_id, module_id]
            )
        return [LessonProgress.from_row(row) for row in rows]

    async def save_lesson_progress(self, progress: LessonProgress) -> None:
        await self._execute(
            self._upsert_lesson_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.module_id,
                progress.lesson_id,
                progress.completed,
                progress.completed_at,
            ],
        )

    # ==========================================================================
    # Module / Course Progress
    # ==========================================================================

    async def list_module_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[ModuleProgress]:
        rows = await self._execute(
            self._get_course_module_progress, [user_id, course_id]
        )
        return [ModuleProgress.from_row(row) for row in rows]

    async def save_module_progress(self, progress: ModuleProgress) -> None:
        await self._execute(
            self._upsert_module_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.module_id,
                progress.percentage,
                progress.lessons_completed,
                progress.lessons_total,
            ],
        )

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgress | None:
        result = await self._execute(self._get_course_progress, [user_id, course_id])
        row = result.one()
        return CourseProgress.from_row(row) if row else None

    async def save_course_progress(self, progress: CourseProgress) -> None:
        await self._execute(
            self._upsert_course_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.percentage,
                progress.lessons_completed,
                progress.lessons_total,
            ],
        )
