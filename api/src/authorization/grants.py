"""Direct grant management for admins."""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.catalog.service import CatalogReader
from src.core.exceptions import InvalidStateError, NotFoundError, ValidationError

from .models import AuthorizationGrant, GrantKind, ensure_utc_aware
from .store import AuthorizationGrantStore


logger = structlog.get_logger(__name__)


class GrantService:
    """Creates, lists and revokes course, module and lesson grants."""

    def __init__(self, catalog: CatalogReader, grants: AuthorizationGrantStore):
        self.catalog = catalog
        self.grants = grants

    async def create_grant(
        self,
        user_id: UUID,
        course_id: UUID,
        kind: GrantKind,
        granted_by: UUID,
        module_id: UUID | None = None,
        lesson_id: UUID | None = None,
        expires_at: datetime | None = None,
        reason: str | None = None,
    ) -> AuthorizationGrant:
        """Grant access to a whole course, one module or one lesson.

        A lesson grant records the lesson's module as well, whatever
        ``module_id`` the caller passed.

        Raises:
            NotFoundError: Unknown user, course, module or lesson
            ValidationError: Reference outside the course, scope not matching
                the kind, or expiry in the past
        """
        kind = GrantKind(kind)
        await self.catalog.require_user(user_id)
        await self.catalog.require_course(course_id)

        expires_at = ensure_utc_aware(expires_at)
        if expires_at is not None and expires_at <= datetime.now(UTC):
            raise ValidationError("A data de expiracao deve estar no futuro")

        if kind == GrantKind.LESSON:
            if lesson_id is None:
                raise ValidationError("Liberacao de aula exige a aula")
            _, module = await self.catalog.locate_lesson(lesson_id, course_id)
            module_id = module.id
        elif kind == GrantKind.MODULE and module_id is not None:
            module = await self.catalog.require_module(module_id)
            if module.course_id != course_id:
                raise ValidationError("Modulo nao pertence ao curso informado")

        grant = AuthorizationGrant(
            user_id=user_id,
            course_id=course_id,
            kind=kind,
            module_id=module_id,
            lesson_id=lesson_id,
            expires_at=expires_at,
            granted_by=granted_by,
            reason=reason,
        )
        await self.grants.insert(grant)

        logger.info(
            "authorization_grant_created",
            grant_id=str(grant.grant_id),
            user_id=str(user_id),
            course_id=str(course_id),
            kind=kind.value,
            granted_by=str(granted_by),
        )
        return grant

    async def list_grants(
        self, user_id: UUID, course_id: UUID, active_only: bool = False
    ) -> list[AuthorizationGrant]:
        grants = await self.grants.list_for_user_course(user_id, course_id)
        if active_only:
            now = datetime.now(UTC)
            grants = [g for g in grants if g.is_active(now)]
        return sorted(grants, key=lambda g: g.created_at)

    async def revoke_grant(
        self, user_id: UUID, course_id: UUID, grant_id: UUID, revoked_by: UUID
    ) -> AuthorizationGrant:
        """Deactivate a grant. The row is kept for auditing.

        Raises:
            NotFoundError: Unknown grant
            InvalidStateError: Grant already revoked
        """
        grant = await self.grants.get(user_id, course_id, grant_id)
        if grant is None:
            raise NotFoundError("Liberacao nao encontrada")
        if not grant.active:
            raise InvalidStateError("Liberacao ja revogada", "already_revoked")

        grant = await self.grants.revoke(grant, revoked_by)
        logger.info(
            "authorization_grant_revoked",
            grant_id=str(grant_id),
            revoked_by=str(revoked_by),
        )
        return grant
