# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Read-only access to the course catalog."""

from uuid import UUID

from src.core.database.store import CassandraStore
from src.core.exceptions import NotFoundError, ValidationError

from .models import Course, Lesson, Module, User


class CatalogReader(CassandraStore):
    """Looks up users, courses, modules and lessons.

    ``get_*`` return None for unknown ids; ``require_*`` raise NotFoundError.
    Listings return active entries only, ordered by position.
    """

    def _prepare_statements(self) -> None:
        self._get_user = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_course = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_module = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.modules WHERE id = ?"
        )
        self._get_lesson = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._list_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules_by_course
            WHERE course_id = ?
        """)
        self._list_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons_by_module
            WHERE module_id = ?
        """)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_user(self, user_id: UUID) -> User | None:
        row = (await self._execute(self._get_user, [user_id])).one()
        return User.from_row(row) if row else None

    async def get_course(self, course_id: UUID) -> Course | None:
        row = (await self._execute(self._get_course, [course_id])).one()
        return Course.from_row(row) if row else None

    async def get_module(self, module_id: UUID) -> Module | None:
        row = (await self._execute(self._get_module, [module_id])).one()
        return Module.from_row(row) if row else None

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = (await self._execute(self._get_lesson, [lesson_id])).one()
        return Lesson.from_row(row) if row else None

    async def list_active_modules(self, course_id: UUID) -> list[Module]:
        rows = await self._execute(self._list_modules, [course_id])
        modules = [Module.from_course_row(row, course_id) for row in rows]
        return sorted((m for m in modules if m.active), key=lambda m: m.position)

    async def list_active_lessons(self, module_id: UUID) -> list[Lesson]:
        rows = await self._execute(self._list_lessons, [module_id])
        lessons = [Lesson.from_module_row(row, module_id) for row in rows]
        return sorted((ls for ls in lessons if ls.active), key=lambda ls: ls.position)

    # ==========================================================================
    # Strict lookups
    # ==========================================================================

    async def require_user(self, user_id: UUID) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("Usuario nao encontrado")
        return user

    async def require_course(self, course_id: UUID) -> Course:
        course = await self.get_course(course_id)
        if course is None:
            raise NotFoundError("Curso nao encontrado")
        return course

    async def require_module(self, module_id: UUID) -> Module:
        module = await self.get_module(module_id)
        if module is None:
            raise NotFoundError("Modulo nao encontrado")
        return module

    async def require_lesson(self, lesson_id: UUID) -> Lesson:
        lesson = await self.get_lesson(lesson_id)
        if lesson is None:
            raise NotFoundError("Aula nao encontrada")
        return lesson

    async def locate_lesson(
        self, lesson_id: UUID, course_id: UUID | None = None
    ) -> tuple[Lesson, Module]:
        """Resolve a lesson and its module, checking the course when given.

        Raises:
            NotFoundError: Unknown lesson or module
            ValidationError: Lesson belongs to another course
        """
        lesson = await self.require_lesson(lesson_id)
        module = await self.require_module(lesson.module_id)
        if course_id is not None and module.course_id != course_id:
            raise ValidationError("Aula nao pertence ao curso informado")
        return lesson, module

    async def next_lesson_after(self, lesson: Lesson, module: Module) -> Lesson | None:
        """Next active lesson in course order, or None after the last one.

        The next lesson of the same module comes first; otherwise the first
        lesson of the following modules, skipping modules with no active
        lessons.
        """
        for candidate in await self.list_active_lessons(module.id):
            if candidate.position > lesson.position:
                return candidate

        for next_module in await self.list_active_modules(module.course_id):
            if next_module.position <= module.position:
                continue
            lessons = await self.list_active_lessons(next_module.id)
            if lessons:
                return lessons[0]

        return None
