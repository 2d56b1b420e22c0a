# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cassandra persistence for grants and requests.

Grant lists are cached in Redis per (user, course) under a generation
number that every grant write increments, so a list read before the write
can only land under a key nobody reads any more.

Request state changes are lightweight transactions: the pending slot is
claimed with ``IF NOT EXISTS`` and every status change is guarded by
``IF status = ?`` so two admins can never both resolve the same request.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import orjson
import structlog
from redis.exceptions import RedisError

from src.config import get_settings
from src.core.database.store import CassandraStore, was_applied
from src.core.redis import grants_cache_key, grants_generation_key

from .models import AuthorizationGrant, AuthorizationRequest, RequestStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class AuthorizationGrantStore(CassandraStore):
    """Grants partitioned by (user, course), with an optional Redis cache."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis: "Redis | None" = None,
        cache_ttl: int | None = None,
        request_timeout: float | None = None,
    ):
        self.redis = redis
        self.cache_ttl = (
            cache_ttl if cache_ttl is not None else get_settings().access_cache_ttl_seconds
        )
        super().__init__(session, keyspace, request_timeout)

    def _prepare_statements(self) -> None:
        self._insert_grant = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.authorization_grants
            (user_id, course_id, grant_id, kind, module_id, lesson_id, expires_at,
             active, granted_by, reason, request_id, created_at, revoked_at,
             revoked_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._list_grants = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.authorization_grants
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_grant = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.authorization_grants
            WHERE user_id = ? AND course_id = ? AND grant_id = ?
        """)

        self._revoke_grant = self.session.prepare(f"""
            UPDATE {self.keyspace}.authorization_grants
            SET active = false, revoked_at = ?, revoked_by = ?
            WHERE user_id = ? AND course_id = ? AND grant_id = ?
        """)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_for_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> list[AuthorizationGrant]:
        """All grants (active or not) of a user in a course."""
        # Read the generation before Cassandra: a write landing in between
        # bumps it and orphans whatever this call caches
        generation = await self._cache_generation(user_id, course_id)
        if generation is not None:
            cached = await self._cache_get(user_id, course_id, generation)
            if cached is not None:
                return cached

        rows = await self._execute(self._list_grants, [user_id, course_id])
        grants = [AuthorizationGrant.from_row(row) for row in rows]

        if generation is not None:
            await self._cache_set(user_id, course_id, generation, grants)
        return grants

    async def get(
        self, user_id: UUID, course_id: UUID, grant_id: UUID
    ) -> AuthorizationGrant | None:
        result = await self._execute(self._get_grant, [user_id, course_id, grant_id])
        row = result.one()
        return AuthorizationGrant.from_row(row) if row else None

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def insert(self, grant: AuthorizationGrant) -> None:
        await self._execute(
            self._insert_grant,
            [
                grant.user_id,
                grant.course_id,
                grant.grant_id,
                grant.kind.value,
                grant.module_id,
                grant.lesson_id,
                grant.expires_at,
                grant.active,
                grant.granted_by,
                grant.reason,
                grant.request_id,
                grant.created_at,
                grant.revoked_at,
                grant.revoked_by,
            ],
        )
        await self.invalidate(grant.user_id, grant.course_id)

    async def revoke(
        self, grant: AuthorizationGrant, revoked_by: UUID
    ) -> AuthorizationGrant:
        now = datetime.now(UTC)
        await self._execute(
            self._revoke_grant,
            [now, revoked_by, grant.user_id, grant.course_id, grant.grant_id],
        )
        await self.invalidate(grant.user_id, grant.course_id)

        grant.active = False
        grant.revoked_at = now
        grant.revoked_by = revoked_by
        return grant

    # ==========================================================================
    # Cache
    # ==========================================================================

    async def invalidate(self, user_id: UUID, course_id: UUID) -> None:
        """Move the (user, course) cache to a new generation."""
        if not self.redis:
            return
        try:
            await self.redis.incr(grants_generation_key(user_id, course_id))
        except RedisError as e:
            logger.warning("grant_cache_invalidate_failed", error=str(e))

    async def _cache_generation(self, user_id: UUID, course_id: UUID) -> str | None:
        """Current cache generation, or None when the cache is unusable."""
        if not self.redis:
            return None
        try:
            generation = await self.redis.get(grants_generation_key(user_id, course_id))
        except RedisError as e:
            logger.warning("grant_cache_read_failed", error=str(e))
            return None
        return str(generation) if generation is not None else "0"

    async def _cache_get(
        self, user_id: UUID, course_id: UUID, generation: str
    ) -> list[AuthorizationGrant] | None:
        try:
            cached = await self.redis.get(
                grants_cache_key(user_id, course_id, generation)
            )
        except RedisError as e:
            logger.warning("grant_cache_read_failed", error=str(e))
            return None
        if cached is None:
            return None
        return [AuthorizationGrant.from_dict(item) for item in orjson.loads(cached)]

    async def _cache_set(
        self,
        user_id: UUID,
        course_id: UUID,
        generation: str,
        grants: list[AuthorizationGrant],
    ) -> None:
        try:
            await self.redis.setex(
                grants_cache_key(user_id, course_id, generation),
                self.cache_ttl,
                orjson.dumps([grant.to_dict() for grant in grants]),
            )
        except RedisError as e:
            logger.warning("grant_cache_write_failed", error=str(e))


class AuthorizationRequestStore(CassandraStore):
    """Requests, their lookup tables and the pending-uniqueness slot."""

    def _prepare_statements(self) -> None:
        # Main table
        self._insert_request = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.authorization_requests
            (request_id, user_id, course_id, module_id, lesson_id, status, origin,
             reason, rejection_reason, grant_id, processed_by, processed_at,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_request = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.authorization_requests
            WHERE request_id = ?
        """)

        self._delete_request = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.authorization_requests
            WHERE request_id = ?
        """)

        # Compare-and-swap status change
        self._transition = self.session.prepare(f"""
            UPDATE {self.keyspace}.authorization_requests
            SET status = ?, grant_id = ?, rejection_reason = ?, processed_by = ?,
                processed_at = ?, updated_at = ?
            WHERE request_id = ?
            IF status = ?
        """)

        # Undo an approval whose grant could not be written
        self._revert_approval = self.session.prepare(f"""
            UPDATE {self.keyspace}.authorization_requests
            SET status = ?, grant_id = null, processed_by = null,
                processed_at = null, updated_at = ?
            WHERE request_id = ?
            IF status = ? AND grant_id = ?
        """)

        # Lookup tables
        self._insert_by_status = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.authorization_requests_by_status
            (status, created_at, request_id, user_id, course_id, lesson_id, origin)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._delete_by_status = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.authorization_requests_by_status
            WHERE status = ? AND created_at = ? AND request_id = ?
        """)

        self._list_by_status = self.session.prepare(f"""
            SELECT request_id FROM {self.keyspace}.authorization_requests_by_status
            WHERE status = ?
            LIMIT ?
        """)

        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.authorization_requests_by_user
            (user_id, created_at, request_id)
            VALUES (?, ?, ?)
        """)

        self._delete_by_user = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.authorization_requests_by_user
            WHERE user_id = ? AND created_at = ? AND request_id = ?
        """)

        self._list_by_user = self.session.prepare(f"""
            SELECT request_id FROM {self.keyspace}.authorization_requests_by_user
            WHERE user_id = ?
            LIMIT ?
        """)

        # Pending slot
        self._claim_pending = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.pending_authorization_requests
            (user_id, course_id, lesson_id, request_id)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._release_pending = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.pending_authorization_requests
            WHERE user_id = ? AND course_id = ? AND lesson_id = ?
            IF request_id = ?
        """)

    # ==========================================================================
    # Pending slot
    # ==========================================================================

    async def claim_pending_slot(
        self, request: AuthorizationRequest
    ) -> tuple[bool, UUID | None]:
        """Reserve the pending slot of (user, course, lesson) for a request.

        Returns:
            ``(True, None)`` when claimed, ``(False, holder_id)`` when another
            request already holds it.
        """
        result = await self._execute(
            self._claim_pending,
            [request.user_id, request.course_id, request.lesson_id, request.request_id],
        )
        if was_applied(result):
            return True, None
        row = result.one()
        return False, getattr(row, "request_id", None)

    async def release_pending_slot(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        request_id: UUID,
    ) -> bool:
        """Free the slot if ``request_id`` still holds it."""
        result = await self._execute(
            self._release_pending, [user_id, course_id, lesson_id, request_id]
        )
        return was_applied(result)

    # ==========================================================================
    # Requests
    # ==========================================================================

    async def insert(self, request: AuthorizationRequest) -> None:
        """Write the lookup rows, then the main row.

        Listings load every id from the main table and skip missing rows, so
        a failure before the last write leaves nothing visible.
        """
        await self._execute(
            self._insert_by_user,
            [request.user_id, request.created_at, request.request_id],
        )
        await self._index_status(request)
        await self._execute(
            self._insert_request,
            [
                request.request_id,
                request.user_id,
                request.course_id,
                request.module_id,
                request.lesson_id,
                request.status.value,
                request.origin.value,
                request.reason,
                request.rejection_reason,
                request.grant_id,
                request.processed_by,
                request.processed_at,
                request.created_at,
                request.updated_at,
            ],
        )

    async def discard(self, request: AuthorizationRequest) -> None:
        """Delete every row of a request whose submission failed part way."""
        await self._execute(self._delete_request, [request.request_id])
        await self._execute(
            self._delete_by_status,
            [request.status.value, request.created_at, request.request_id],
        )
        await self._execute(
            self._delete_by_user,
            [request.user_id, request.created_at, request.request_id],
        )

    async def get(self, request_id: UUID) -> AuthorizationRequest | None:
        result = await self._execute(self._get_request, [request_id])
        row = result.one()
        return AuthorizationRequest.from_row(row) if row else None

    async def transition(
        self,
        request: AuthorizationRequest,
        new_status: RequestStatus,
        processed_by: UUID,
        grant_id: UUID | None = None,
        rejection_reason: str | None = None,
    ) -> bool:
        """Move a pending request to ``new_status``.

        Returns False, without writing, when the request is no longer
        pending (another admin got there first).
        """
        now = datetime.now(UTC)
        result = await self._execute(
            self._transition,
            [
                new_status.value,
                grant_id,
                rejection_reason,
                processed_by,
                now,
                now,
                request.request_id,
                RequestStatus.PENDING.value,
            ],
        )
        if not was_applied(result):
            return False

        request.status = new_status
        request.grant_id = grant_id
        request.rejection_reason = rejection_reason
        request.processed_by = processed_by
        request.processed_at = now
        request.updated_at = now
        return True

    async def revert_approval(self, request: AuthorizationRequest) -> bool:
        """Put an approved request back to pending if it still points at its grant."""
        result = await self._execute(
            self._revert_approval,
            [
                RequestStatus.PENDING.value,
                datetime.now(UTC),
                request.request_id,
                RequestStatus.APPROVED.value,
                request.grant_id,
            ],
        )
        return was_applied(result)

    async def sync_indexes(
        self, request: AuthorizationRequest, previous_status: RequestStatus
    ) -> None:
        """Move the request between status partitions and free its pending slot."""
        await self._execute(
            self._delete_by_status,
            [previous_status.value, request.created_at, request.request_id],
        )
        await self._index_status(request)
        await self.release_pending_slot(
            request.user_id, request.course_id, request.lesson_id, request.request_id
        )

    async def list_by_status(
        self, status: RequestStatus, limit: int = 100
    ) -> list[AuthorizationRequest]:
        """Requests currently in ``status``, oldest first."""
        rows = await self._execute(self._list_by_status, [status.value, limit])
        requests = await self._load_many(row.request_id for row in rows)
        # The main table is authoritative; drop index rows that lag behind
        return [r for r in requests if r.status == status]

    async def list_by_user(
        self, user_id: UUID, limit: int = 50
    ) -> list[AuthorizationRequest]:
        """Requests of a user, newest first."""
        rows = await self._execute(self._list_by_user, [user_id, limit])
        return await self._load_many(row.request_id for row in rows)

    async def _load_many(self, request_ids) -> list[AuthorizationRequest]:
        requests = []
        for request_id in request_ids:
            request = await self.get(request_id)
            if request is not None:
                requests.append(request)
        return requests

    async def _index_status(self, request: AuthorizationRequest) -> None:
        await self._execute(
            self._insert_by_status,
            [
                request.status.value,
                request.created_at,
                request.request_id,
                request.user_id,
                request.course_id,
                request.lesson_id,
                request.origin.value,
            ],
        )
