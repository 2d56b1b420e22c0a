"""Shared fixtures: in-memory catalog and stores, wired services, test client.

The in-memory stores subclass the Cassandra ones and keep their public
interface, including the lightweight-transaction semantics of the request
store (pending slot claim and status compare-and-swap).
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.auth.security import create_access_token
from src.authorization.chain import AutoChainTrigger
from src.authorization.evaluator import AuthorizationEvaluator
from src.authorization.grants import GrantService
from src.authorization.models import (
    AuthorizationGrant,
    AuthorizationRequest,
    RequestStatus,
)
from src.authorization.store import AuthorizationGrantStore, AuthorizationRequestStore
from src.authorization.workflow import RequestWorkflow
from src.catalog.models import Course, Lesson, Module, User
from src.catalog.service import CatalogReader
from src.main import create_app
from src.progress.models import CourseProgress, LessonProgress, ModuleProgress
from src.progress.service import ProgressAggregator
from src.progress.store import ProgressStore


# ==============================================================================
# In-memory collaborators
# ==============================================================================


class InMemoryCatalog(CatalogReader):
    def __init__(self) -> None:
        self.users: dict[UUID, User] = {}
        self.courses: dict[UUID, Course] = {}
        self.modules: dict[UUID, Module] = {}
        self.lessons: dict[UUID, Lesson] = {}

    def add_user(self, track: str | None = "programacao", status: str = "ativo") -> User:
        user = User(id=uuid4(), track=track, status=status)
        self.users[user.id] = user
        return user

    def add_course(self, subject: str | None = "python", active: bool = True) -> Course:
        course = Course(id=uuid4(), subject=subject, active=active)
        self.courses[course.id] = course
        return course

    def add_module(self, course_id: UUID, position: int, active: bool = True) -> Module:
        module = Module(id=uuid4(), course_id=course_id, position=position, active=active)
        self.modules[module.id] = module
        return module

    def add_lesson(self, module_id: UUID, position: int, active: bool = True) -> Lesson:
        lesson = Lesson(id=uuid4(), module_id=module_id, position=position, active=active)
        self.lessons[lesson.id] = lesson
        return lesson

    async def get_user(self, user_id: UUID) -> User | None:
        return self.users.get(user_id)

    async def get_course(self, course_id: UUID) -> Course | None:
        return self.courses.get(course_id)

    async def get_module(self, module_id: UUID) -> Module | None:
        return self.modules.get(module_id)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self.lessons.get(lesson_id)

    async def list_active_modules(self, course_id: UUID) -> list[Module]:
        modules = [
            m for m in self.modules.values() if m.course_id == course_id and m.active
        ]
        return sorted(modules, key=lambda m: m.position)

    async def list_active_lessons(self, module_id: UUID) -> list[Lesson]:
        lessons = [
            ls for ls in self.lessons.values() if ls.module_id == module_id and ls.active
        ]
        return sorted(lessons, key=lambda ls: ls.position)


class InMemoryProgressStore(ProgressStore):
    def __init__(self) -> None:
        self.lessons: dict[tuple, LessonProgress] = {}
        self.modules: dict[tuple, ModuleProgress] = {}
        self.courses: dict[tuple, CourseProgress] = {}
        self.writes: list[str] = []

    async def get_lesson_progress(self, user_id, course_id, module_id, lesson_id):
        return self.lessons.get((user_id, course_id, module_id, lesson_id))

    async def list_lesson_progress(self, user_id, course_id, module_id=None):
        return [
            lp
            for (u, c, m, _), lp in self.lessons.items()
            if u == user_id and c == course_id and (module_id is None or m == module_id)
        ]

    async def save_lesson_progress(self, progress):
        key = (progress.user_id, progress.course_id, progress.module_id, progress.lesson_id)
        self.lessons[key] = progress
        self.writes.append("lesson")

    async def list_module_progress(self, user_id, course_id):
        return [
            mp
            for (u, c, _), mp in self.modules.items()
            if u == user_id and c == course_id
        ]

    async def save_module_progress(self, progress):
        self.modules[(progress.user_id, progress.course_id, progress.module_id)] = progress
        self.writes.append("module")

    async def get_course_progress(self, user_id, course_id):
        return self.courses.get((user_id, course_id))

    async def save_course_progress(self, progress):
        self.courses[(progress.user_id, progress.course_id)] = progress
        self.writes.append("course")


class InMemoryGrantStore(AuthorizationGrantStore):
    def __init__(self) -> None:
        self.grants: dict[UUID, AuthorizationGrant] = {}
        self.fail_next_insert: Exception | None = None

    async def list_for_user_course(self, user_id, course_id):
        return [
            replace(g)
            for g in self.grants.values()
            if g.user_id == user_id and g.course_id == course_id
        ]

    async def get(self, user_id, course_id, grant_id):
        grant = self.grants.get(grant_id)
        if grant and grant.user_id == user_id and grant.course_id == course_id:
            return replace(grant)
        return None

    async def insert(self, grant):
        if self.fail_next_insert is not None:
            error, self.fail_next_insert = self.fail_next_insert, None
            raise error
        self.grants[grant.grant_id] = replace(grant)

    async def revoke(self, grant, revoked_by):
        stored = self.grants[grant.grant_id]
        stored.active = False
        stored.revoked_at = datetime.now(UTC)
        stored.revoked_by = revoked_by
        return replace(stored)

    async def invalidate(self, user_id, course_id):
        return None


class InMemoryRequestStore(AuthorizationRequestStore):
    def __init__(self) -> None:
        self.requests: dict[UUID, AuthorizationRequest] = {}
        self.slots: dict[tuple, UUID] = {}
        self.fail_next_insert: Exception | None = None
        # raised after the row is stored, like a lookup write failing late
        self.fail_after_write: Exception | None = None
        self.fail_next_discard: Exception | None = None

    async def claim_pending_slot(self, request):
        key = (request.user_id, request.course_id, request.lesson_id)
        if key in self.slots:
            return False, self.slots[key]
        self.slots[key] = request.request_id
        return True, None

    async def release_pending_slot(self, user_id, course_id, lesson_id, request_id):
        key = (user_id, course_id, lesson_id)
        if self.slots.get(key) != request_id:
            return False
        del self.slots[key]
        return True

    async def insert(self, request):
        if self.fail_next_insert is not None:
            error, self.fail_next_insert = self.fail_next_insert, None
            raise error
        self.requests[request.request_id] = replace(request)
        if self.fail_after_write is not None:
            error, self.fail_after_write = self.fail_after_write, None
            raise error

    async def discard(self, request):
        if self.fail_next_discard is not None:
            error, self.fail_next_discard = self.fail_next_discard, None
            raise error
        self.requests.pop(request.request_id, None)

    async def get(self, request_id):
        request = self.requests.get(request_id)
        return replace(request) if request else None

    async def transition(
        self, request, new_status, processed_by, grant_id=None, rejection_reason=None
    ):
        stored = self.requests.get(request.request_id)
        if stored is None or stored.status != RequestStatus.PENDING:
            return False
        now = datetime.now(UTC)
        for target in (stored, request):
            target.status = new_status
            target.grant_id = grant_id
            target.rejection_reason = rejection_reason
            target.processed_by = processed_by
            target.processed_at = now
            target.updated_at = now
        return True

    async def revert_approval(self, request):
        stored = self.requests.get(request.request_id)
        if (
            stored is None
            or stored.status != RequestStatus.APPROVED
            or stored.grant_id != request.grant_id
        ):
            return False
        stored.status = RequestStatus.PENDING
        stored.grant_id = None
        stored.processed_by = None
        stored.processed_at = None
        return True

    async def sync_indexes(self, request, previous_status):
        await self.release_pending_slot(
            request.user_id, request.course_id, request.lesson_id, request.request_id
        )

    async def list_by_status(self, status, limit=100):
        matching = [r for r in self.requests.values() if r.status == status]
        return [replace(r) for r in sorted(matching, key=lambda r: r.created_at)][:limit]

    async def list_by_user(self, user_id, limit=50):
        matching = [r for r in self.requests.values() if r.user_id == user_id]
        ordered = sorted(matching, key=lambda r: r.created_at, reverse=True)
        return [replace(r) for r in ordered][:limit]


# ==============================================================================
# Course layout helper
# ==============================================================================


@dataclass
class CourseLayout:
    course: Course
    modules: list[Module]
    lessons: list[list[Lesson]]

    @property
    def all_lessons(self) -> list[Lesson]:
        return [lesson for module_lessons in self.lessons for lesson in module_lessons]


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def make_course(catalog: InMemoryCatalog) -> Callable[..., CourseLayout]:
    """Factory building a course with ``lessons_per_module`` active lessons each."""

    def _make(subject: str = "python", lessons_per_module: tuple[int, ...] = (2,)):
        course = catalog.add_course(subject=subject)
        modules, lessons = [], []
        for position, count in enumerate(lessons_per_module, start=1):
            module = catalog.add_module(course.id, position)
            modules.append(module)
            lessons.append([catalog.add_lesson(module.id, i) for i in range(1, count + 1)])
        return CourseLayout(course=course, modules=modules, lessons=lessons)

    return _make


@pytest.fixture
def learner(catalog: InMemoryCatalog) -> User:
    return catalog.add_user(track="programacao")


@pytest.fixture
def admin_id() -> UUID:
    return uuid4()


# ==============================================================================
# Services
# ==============================================================================


@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def grant_store() -> InMemoryGrantStore:
    return InMemoryGrantStore()


@pytest.fixture
def request_store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def evaluator(catalog, grant_store, progress_store) -> AuthorizationEvaluator:
    return AuthorizationEvaluator(catalog, grant_store, progress_store)


@pytest.fixture
def workflow(evaluator, request_store, grant_store) -> RequestWorkflow:
    return RequestWorkflow(evaluator, request_store, grant_store, page_size=100)


@pytest.fixture
def aggregator(progress_store, catalog) -> ProgressAggregator:
    return ProgressAggregator(progress_store, catalog)


@pytest.fixture
def grant_service(catalog, grant_store) -> GrantService:
    return GrantService(catalog, grant_store)


@pytest.fixture
def auto_chain(workflow, evaluator, catalog) -> AutoChainTrigger:
    return AutoChainTrigger(workflow, evaluator, catalog, queue_size=10)


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def app(
    catalog, evaluator, workflow, grant_service, aggregator, auto_chain
) -> FastAPI:
    application = create_app()
    application.state.catalog = catalog
    application.state.authorization_evaluator = evaluator
    application.state.request_workflow = workflow
    application.state.grant_service = grant_service
    application.state.progress_aggregator = aggregator
    application.state.auto_chain = auto_chain
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(user_id: UUID, role: str = "student") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}

    return _headers
