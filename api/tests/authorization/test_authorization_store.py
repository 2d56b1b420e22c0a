"""Tests for the Cassandra grant and request stores (mocked session)."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import orjson
import pytest
from cassandra.cluster import Session
from redis.exceptions import ConnectionError as RedisConnectionError

from src.authorization.models import (
    AuthorizationGrant,
    AuthorizationRequest,
    GrantKind,
    RequestStatus,
)
from src.authorization.store import AuthorizationGrantStore, AuthorizationRequestStore
from src.core.redis import grants_cache_key, grants_generation_key


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    # one mock per statement so calls can be told apart
    session.prepare = Mock(side_effect=lambda *_: Mock())
    # cassandra-asyncio-driver exposes an awaitable execute
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    return redis_mock


@pytest.fixture
def grant_store(mock_session, mock_redis) -> AuthorizationGrantStore:
    return AuthorizationGrantStore(
        mock_session, "test_keyspace", redis=mock_redis, cache_ttl=60, request_timeout=1
    )


@pytest.fixture
def request_store(mock_session) -> AuthorizationRequestStore:
    return AuthorizationRequestStore(mock_session, "test_keyspace", request_timeout=1)


@pytest.fixture
def pending_request() -> AuthorizationRequest:
    return AuthorizationRequest(
        user_id=uuid4(), course_id=uuid4(), module_id=uuid4(), lesson_id=uuid4()
    )


class FakeRedis:
    """Dict-backed stand-in for the handful of commands the cache uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: bytes) -> None:
        self.data[key] = value.decode()

    async def incr(self, key: str) -> int:
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value


def grant_row(grant: AuthorizationGrant) -> SimpleNamespace:
    return SimpleNamespace(
        user_id=grant.user_id,
        course_id=grant.course_id,
        grant_id=grant.grant_id,
        kind=grant.kind.value,
        module_id=grant.module_id,
        lesson_id=grant.lesson_id,
        expires_at=None,
        active=grant.active,
        granted_by=grant.granted_by,
        reason=grant.reason,
        request_id=grant.request_id,
        # Cassandra returns naive UTC timestamps
        created_at=grant.created_at.replace(tzinfo=None),
        revoked_at=None,
        revoked_by=None,
    )


class TestGrantCache:
    @pytest.mark.asyncio
    async def test_miss_reads_cassandra_and_fills_cache(
        self, grant_store, mock_session, mock_redis
    ) -> None:
        grant = AuthorizationGrant(user_id=uuid4(), course_id=uuid4(), kind="course")
        mock_session.aexecute.return_value = [grant_row(grant)]

        grants = await grant_store.list_for_user_course(grant.user_id, grant.course_id)

        assert [g.grant_id for g in grants] == [grant.grant_id]
        assert grants[0].created_at.tzinfo is UTC
        key, ttl, payload = mock_redis.setex.call_args.args
        assert key == grants_cache_key(grant.user_id, grant.course_id, "0")
        assert ttl == 60
        assert orjson.loads(payload)[0]["grant_id"] == str(grant.grant_id)

    @pytest.mark.asyncio
    async def test_hit_skips_cassandra(self, grant_store, mock_session, mock_redis) -> None:
        grant = AuthorizationGrant(user_id=uuid4(), course_id=uuid4(), kind="course")
        # generation counter, then the cached list
        mock_redis.get.side_effect = ["4", orjson.dumps([grant.to_dict()]).decode()]

        grants = await grant_store.list_for_user_course(grant.user_id, grant.course_id)

        assert grants == [grant]
        mock_session.aexecute.assert_not_called()
        assert mock_redis.get.await_args.args[0] == grants_cache_key(
            grant.user_id, grant.course_id, "4"
        )

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_cassandra(
        self, grant_store, mock_session, mock_redis
    ) -> None:
        mock_redis.get.side_effect = RedisConnectionError("down")
        mock_redis.setex.side_effect = RedisConnectionError("down")
        mock_session.aexecute.return_value = []

        grants = await grant_store.list_for_user_course(uuid4(), uuid4())

        assert grants == []
        mock_session.aexecute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_insert_invalidates_cache(self, grant_store, mock_redis) -> None:
        grant = AuthorizationGrant(
            user_id=uuid4(), course_id=uuid4(), kind=GrantKind.MODULE, module_id=uuid4()
        )

        await grant_store.insert(grant)

        mock_redis.incr.assert_awaited_once_with(
            grants_generation_key(grant.user_id, grant.course_id)
        )

    @pytest.mark.asyncio
    async def test_revoke_marks_inactive_and_invalidates(
        self, grant_store, mock_redis
    ) -> None:
        grant = AuthorizationGrant(user_id=uuid4(), course_id=uuid4(), kind="course")
        admin = uuid4()

        revoked = await grant_store.revoke(grant, admin)

        assert revoked.active is False
        assert revoked.revoked_by == admin
        assert revoked.revoked_at is not None
        mock_redis.incr.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_overlapping_grant_write_is_not_cached(self, mock_session) -> None:
        redis = FakeRedis()
        store = AuthorizationGrantStore(
            mock_session, "ks", redis=redis, cache_ttl=60, request_timeout=1
        )
        grant = AuthorizationGrant(user_id=uuid4(), course_id=uuid4(), kind="course")
        reads = 0

        async def execute(statement, params=None):
            nonlocal reads
            if statement is not store._list_grants:
                return Mock()
            reads += 1
            if reads == 1:
                # approval lands while this read is in flight
                await store.insert(grant)
                return []
            return [grant_row(grant)]

        mock_session.aexecute.side_effect = execute

        stale = await store.list_for_user_course(grant.user_id, grant.course_id)
        fresh = await store.list_for_user_course(grant.user_id, grant.course_id)

        assert stale == []
        assert [g.grant_id for g in fresh] == [grant.grant_id]
        assert reads == 2

    @pytest.mark.asyncio
    async def test_works_without_redis(self, mock_session) -> None:
        store = AuthorizationGrantStore(mock_session, "ks", request_timeout=1)
        mock_session.aexecute.return_value = []

        assert await store.list_for_user_course(uuid4(), uuid4()) == []


class TestPendingSlot:
    @pytest.mark.asyncio
    async def test_claim_applied(self, request_store, mock_session, pending_request) -> None:
        mock_session.aexecute.return_value = Mock(was_applied=True)

        claimed, holder = await request_store.claim_pending_slot(pending_request)

        assert claimed is True
        assert holder is None

    @pytest.mark.asyncio
    async def test_claim_reports_current_holder(
        self, request_store, mock_session, pending_request
    ) -> None:
        holder_id = uuid4()
        result = Mock(was_applied=False)
        result.one.return_value = SimpleNamespace(applied=False, request_id=holder_id)
        mock_session.aexecute.return_value = result

        claimed, holder = await request_store.claim_pending_slot(pending_request)

        assert claimed is False
        assert holder == holder_id

    @pytest.mark.asyncio
    async def test_release_is_conditional_on_holder(
        self, request_store, mock_session, pending_request
    ) -> None:
        mock_session.aexecute.return_value = Mock(was_applied=False)

        released = await request_store.release_pending_slot(
            pending_request.user_id,
            pending_request.course_id,
            pending_request.lesson_id,
            uuid4(),
        )

        assert released is False


class TestTransition:
    @pytest.mark.asyncio
    async def test_applied_transition_updates_request(
        self, request_store, mock_session, pending_request
    ) -> None:
        mock_session.aexecute.return_value = Mock(was_applied=True)
        admin, grant_id = uuid4(), uuid4()

        applied = await request_store.transition(
            pending_request, RequestStatus.APPROVED, admin, grant_id=grant_id
        )

        assert applied is True
        assert pending_request.status is RequestStatus.APPROVED
        assert pending_request.grant_id == grant_id
        assert pending_request.processed_by == admin
        params = mock_session.aexecute.call_args.args[1]
        # SET status ... WHERE request_id = ? IF status = 'pending'
        assert params[0] == "approved"
        assert params[-2] == pending_request.request_id
        assert params[-1] == "pending"

    @pytest.mark.asyncio
    async def test_lost_race_leaves_request_untouched(
        self, request_store, mock_session, pending_request
    ) -> None:
        mock_session.aexecute.return_value = Mock(was_applied=False)

        applied = await request_store.transition(
            pending_request, RequestStatus.REJECTED, uuid4(), rejection_reason="nao"
        )

        assert applied is False
        assert pending_request.status is RequestStatus.PENDING
        assert pending_request.rejection_reason is None

    @pytest.mark.asyncio
    async def test_insert_writes_main_row_last(
        self, request_store, mock_session, pending_request
    ) -> None:
        await request_store.insert(pending_request)

        statements = [c.args[0] for c in mock_session.aexecute.await_args_list]
        assert statements == [
            request_store._insert_by_user,
            request_store._insert_by_status,
            request_store._insert_request,
        ]

    @pytest.mark.asyncio
    async def test_discard_deletes_every_row(
        self, request_store, mock_session, pending_request
    ) -> None:
        await request_store.discard(pending_request)

        statements = [c.args[0] for c in mock_session.aexecute.await_args_list]
        assert statements == [
            request_store._delete_request,
            request_store._delete_by_status,
            request_store._delete_by_user,
        ]
        assert mock_session.aexecute.await_args_list[0].args[1] == [
            pending_request.request_id
        ]

    @pytest.mark.asyncio
    async def test_list_by_status_drops_stale_index_rows(
        self, request_store, mock_session
    ) -> None:
        now = datetime.now(UTC)
        fresh, stale = uuid4(), uuid4()

        def row(request_id, status):
            return SimpleNamespace(
                request_id=request_id,
                user_id=uuid4(),
                course_id=uuid4(),
                module_id=uuid4(),
                lesson_id=uuid4(),
                status=status,
                origin="manual",
                reason=None,
                rejection_reason=None,
                grant_id=None,
                processed_by=None,
                processed_at=None,
                created_at=now,
                updated_at=now,
            )

        def one(value):
            result = Mock()
            result.one.return_value = value
            return result

        mock_session.aexecute.side_effect = [
            [SimpleNamespace(request_id=fresh), SimpleNamespace(request_id=stale)],
            one(row(fresh, "pending")),
            one(row(stale, "approved")),
        ]

        pending = await request_store.list_by_status(RequestStatus.PENDING, 10)

        assert [r.request_id for r in pending] == [fresh]
