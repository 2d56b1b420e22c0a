"""Authorization models and Cassandra schema.

Grants unlock a whole course, a module or a single lesson for a user,
optionally until an expiry. Requests are a learner's (or the auto-chain's)
ask for a lesson grant; an admin approves or rejects them exactly once.

Pending uniqueness per (user, course, lesson) is enforced by a dedicated
table claimed with ``INSERT ... IF NOT EXISTS``; status transitions use
``UPDATE ... IF status = 'pending'``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from src.core.exceptions import ValidationError


if TYPE_CHECKING:
    from cassandra.cluster import Row


class GrantKind(str, Enum):
    """Scope of an authorization grant."""

    COURSE = "course"  # Curso inteiro liberado
    MODULE = "module"  # Modulo liberado
    LESSON = "lesson"  # Aula especifica liberada


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestOrigin(str, Enum):
    MANUAL = "manual"  # Pedido do aluno
    AUTOMATIC = "automatic"  # Gerado ao concluir a aula anterior


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Grants of a user in a course: the evaluator reads one partition per check
AUTHORIZATION_GRANTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.authorization_grants (
    user_id UUID,
    course_id UUID,
    grant_id UUID,
    kind TEXT,
    module_id UUID,
    lesson_id UUID,
    expires_at TIMESTAMP,
    active BOOLEAN,
    granted_by UUID,
    reason TEXT,
    request_id UUID,
    created_at TIMESTAMP,
    revoked_at TIMESTAMP,
    revoked_by UUID,
    PRIMARY KEY ((user_id, course_id), grant_id)
)
"""

AUTHORIZATION_REQUESTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.authorization_requests (
    request_id UUID PRIMARY KEY,
    user_id UUID,
    course_id UUID,
    module_id UUID,
    lesson_id UUID,
    status TEXT,
    origin TEXT,
    reason TEXT,
    rejection_reason TEXT,
    grant_id UUID,
    processed_by UUID,
    processed_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Admin queue: oldest first inside each status partition
AUTHORIZATION_REQUESTS_BY_STATUS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.authorization_requests_by_status (
    status TEXT,
    created_at TIMESTAMP,
    request_id UUID,
    user_id UUID,
    course_id UUID,
    lesson_id UUID,
    origin TEXT,
    PRIMARY KEY ((status), created_at, request_id)
) WITH CLUSTERING ORDER BY (created_at ASC, request_id ASC)
"""

AUTHORIZATION_REQUESTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.authorization_requests_by_user (
    user_id UUID,
    created_at TIMESTAMP,
    request_id UUID,
    PRIMARY KEY ((user_id), created_at, request_id)
) WITH CLUSTERING ORDER BY (created_at DESC, request_id ASC)
"""

# At most one pending request per (user, course, lesson)
PENDING_AUTHORIZATION_REQUESTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.pending_authorization_requests (
    user_id UUID,
    course_id UUID,
    lesson_id UUID,
    request_id UUID,
    PRIMARY KEY ((user_id, course_id, lesson_id))
)
"""

AUTHORIZATION_TABLES_CQL = [
    AUTHORIZATION_GRANTS_TABLE_CQL,
    AUTHORIZATION_REQUESTS_TABLE_CQL,
    AUTHORIZATION_REQUESTS_BY_STATUS_TABLE_CQL,
    AUTHORIZATION_REQUESTS_BY_USER_TABLE_CQL,
    PENDING_AUTHORIZATION_REQUESTS_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _uuid(value: Any) -> UUID | None:
    return UUID(str(value)) if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return ensure_utc_aware(datetime.fromisoformat(value)) if value else None


@dataclass
class AuthorizationGrant:
    """A standing permission unlocking a course, module or lesson for a user."""

    user_id: UUID
    course_id: UUID
    kind: GrantKind
    module_id: UUID | None = None
    lesson_id: UUID | None = None
    expires_at: datetime | None = None
    active: bool = True
    granted_by: UUID | None = None
    reason: str | None = None
    request_id: UUID | None = None
    grant_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    revoked_at: datetime | None = None
    revoked_by: UUID | None = None

    def __post_init__(self) -> None:
        self.kind = GrantKind(self.kind)
        self.expires_at = ensure_utc_aware(self.expires_at)
        if self.kind == GrantKind.LESSON and self.lesson_id is None:
            raise ValidationError("Liberacao de aula exige a aula")
        if self.kind == GrantKind.MODULE and (
            self.module_id is None or self.lesson_id is not None
        ):
            raise ValidationError("Liberacao de modulo exige apenas o modulo")
        if self.kind == GrantKind.COURSE and (
            self.module_id is not None or self.lesson_id is not None
        ):
            raise ValidationError("Liberacao de curso nao aceita modulo ou aula")

    def is_active(self, now: datetime | None = None) -> bool:
        """Active flag set and not past its expiry."""
        if not self.active:
            return False
        now = now or datetime.now(UTC)
        return not (self.expires_at and now >= self.expires_at)

    def covers(self, module_id: UUID, lesson_id: UUID) -> bool:
        """Whether this grant's scope includes the lesson (ignores expiry)."""
        if self.kind == GrantKind.COURSE:
            return True
        if self.kind == GrantKind.MODULE:
            return self.module_id == module_id
        return self.lesson_id == lesson_id

    @classmethod
    def from_row(cls, row: "Row") -> "AuthorizationGrant":
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            grant_id=row.grant_id,
            kind=GrantKind(row.kind),
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            expires_at=ensure_utc_aware(row.expires_at),
            active=bool(row.active),
            granted_by=row.granted_by,
            reason=row.reason,
            request_id=row.request_id,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            revoked_at=ensure_utc_aware(row.revoked_at),
            revoked_by=row.revoked_by,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary (used by the Redis cache)."""
        return {
            "user_id": str(self.user_id),
            "course_id": str(self.course_id),
            "grant_id": str(self.grant_id),
            "kind": self.kind.value,
            "module_id": str(self.module_id) if self.module_id else None,
            "lesson_id": str(self.lesson_id) if self.lesson_id else None,
            "expires_at": _iso(self.expires_at),
            "active": self.active,
            "granted_by": str(self.granted_by) if self.granted_by else None,
            "reason": self.reason,
            "request_id": str(self.request_id) if self.request_id else None,
            "created_at": _iso(self.created_at),
            "revoked_at": _iso(self.revoked_at),
            "revoked_by": str(self.revoked_by) if self.revoked_by else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthorizationGrant":
        return cls(
            user_id=UUID(data["user_id"]),
            course_id=UUID(data["course_id"]),
            grant_id=UUID(data["grant_id"]),
            kind=GrantKind(data["kind"]),
            module_id=_uuid(data.get("module_id")),
            lesson_id=_uuid(data.get("lesson_id")),
            expires_at=_parse_dt(data.get("expires_at")),
            active=bool(data.get("active", True)),
            granted_by=_uuid(data.get("granted_by")),
            reason=data.get("reason"),
            request_id=_uuid(data.get("request_id")),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(UTC),
            revoked_at=_parse_dt(data.get("revoked_at")),
            revoked_by=_uuid(data.get("revoked_by")),
        )


@dataclass
class AuthorizationRequest:
    """A request for a lesson grant. Transitions out of pending exactly once."""

    user_id: UUID
    course_id: UUID
    module_id: UUID
    lesson_id: UUID
    origin: RequestOrigin = RequestOrigin.MANUAL
    status: RequestStatus = RequestStatus.PENDING
    reason: str | None = None
    rejection_reason: str | None = None
    grant_id: UUID | None = None
    processed_by: UUID | None = None
    processed_at: datetime | None = None
    request_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    @classmethod
    def from_row(cls, row: "Row") -> "AuthorizationRequest":
        return cls(
            request_id=row.request_id,
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            status=RequestStatus(row.status),
            origin=RequestOrigin(row.origin),
            reason=row.reason,
            rejection_reason=row.rejection_reason,
            grant_id=row.grant_id,
            processed_by=row.processed_by,
            processed_at=ensure_utc_aware(row.processed_at),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "lesson_id": self.lesson_id,
            "status": self.status.value,
            "origin": self.origin.value,
            "reason": self.reason,
            "rejection_reason": self.rejection_reason,
            "grant_id": self.grant_id,
            "processed_by": self.processed_by,
            "processed_at": _iso(self.processed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_lesson_grant_for_request(
    request: AuthorizationRequest,
    granted_by: UUID,
    reason: str | None = None,
    expires_at: datetime | None = None,
) -> AuthorizationGrant:
    """Lesson-level grant materialized by approving a request."""
    return AuthorizationGrant(
        user_id=request.user_id,
        course_id=request.course_id,
        kind=GrantKind.LESSON,
        module_id=request.module_id,
        lesson_id=request.lesson_id,
        expires_at=expires_at,
        granted_by=granted_by,
        reason=reason,
        request_id=request.request_id,
    )
