"""Authorization request workflow.

States: ``pending -> approved`` (materializes a lesson grant) or
``pending -> rejected``. Terminal states never change; acting on a
non-pending request raises AlreadyProcessedError without writing anything.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, NoReturn
from uuid import UUID

import structlog

from src.config import get_settings
from src.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    DuplicateRequestError,
    NotFoundError,
    ValidationError,
)

from .models import (
    AuthorizationGrant,
    AuthorizationRequest,
    RequestOrigin,
    RequestStatus,
    create_lesson_grant_for_request,
    ensure_utc_aware,
)


if TYPE_CHECKING:
    from .evaluator import AuthorizationEvaluator
    from .store import AuthorizationGrantStore, AuthorizationRequestStore


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    request_id: UUID
    created: bool = True


class RequestWorkflow:
    """Submits, approves and rejects authorization requests."""

    def __init__(
        self,
        evaluator: "AuthorizationEvaluator",
        requests: "AuthorizationRequestStore",
        grants: "AuthorizationGrantStore",
        page_size: int | None = None,
    ):
        self.evaluator = evaluator
        self.catalog = evaluator.catalog
        self.requests = requests
        self.grants = grants
        self.page_size = page_size or get_settings().pending_queue_page_size

    # ==========================================================================
    # Submit
    # ==========================================================================

    async def submit(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        origin: RequestOrigin = RequestOrigin.MANUAL,
        reason: str | None = None,
    ) -> SubmissionResult:
        """Create a pending request for a lesson.

        At most one request per (user, course, lesson) is pending at a time.
        A repeated automatic submission returns the pending request's id.

        Raises:
            NotFoundError: Unknown lesson or module
            ValidationError: Lesson outside the course
            DuplicateRequestError: Manual submission while one is pending
        """
        lesson, module = await self.catalog.locate_lesson(lesson_id, course_id)

        request = AuthorizationRequest(
            user_id=user_id,
            course_id=course_id,
            module_id=module.id,
            lesson_id=lesson.id,
            origin=RequestOrigin(origin),
            reason=reason,
        )

        holder_id = await self._claim_slot(request)
        if holder_id is not None:
            return self._duplicate(request, holder_id)

        try:
            await self.requests.insert(request)
        except Exception:
            await self._abandon(request)
            raise

        logger.info(
            "authorization_request_submitted",
            request_id=str(request.request_id),
            user_id=str(user_id),
            lesson_id=str(lesson.id),
            origin=request.origin.value,
        )
        return SubmissionResult(request_id=request.request_id)

    async def _claim_slot(self, request: AuthorizationRequest) -> UUID | None:
        """Claim the pending slot. Returns the id of a pending holder, if any.

        A slot left behind by a request that is no longer pending is freed
        and the claim retried once. A holder whose row is not readable yet
        belongs to a submission still in flight and counts as pending.
        """
        for _ in range(2):
            claimed, holder_id = await self.requests.claim_pending_slot(request)
            if claimed:
                return None
            if holder_id is None:
                break

            holder = await self.requests.get(holder_id)
            if holder is None or holder.is_pending:
                return holder_id

            logger.warning(
                "stale_pending_slot_released",
                request_id=str(holder_id),
                status=holder.status.value,
            )
            await self.requests.release_pending_slot(
                request.user_id, request.course_id, request.lesson_id, holder_id
            )

        raise ConflictError("Nao foi possivel registrar a solicitacao, tente novamente")

    async def _abandon(self, request: AuthorizationRequest) -> None:
        """Undo a failed insert, then free the pending slot.

        When the rows cannot be deleted the slot stays claimed: a row left
        behind is a pending request and must keep blocking new ones.
        """
        try:
            await self.requests.discard(request)
        except Exception:
            logger.exception(
                "authorization_request_discard_failed",
                request_id=str(request.request_id),
                lesson_id=str(request.lesson_id),
            )
            return
        await self.requests.release_pending_slot(
            request.user_id, request.course_id, request.lesson_id, request.request_id
        )

    def _duplicate(
        self, request: AuthorizationRequest, holder_id: UUID
    ) -> SubmissionResult:
        if request.origin == RequestOrigin.AUTOMATIC:
            logger.info(
                "authorization_request_already_pending",
                request_id=str(holder_id),
                lesson_id=str(request.lesson_id),
            )
            return SubmissionResult(request_id=holder_id, created=False)
        raise DuplicateRequestError(holder_id)

    # ==========================================================================
    # Approve / reject
    # ==========================================================================

    async def approve(
        self,
        request_id: UUID,
        admin_id: UUID,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> tuple[AuthorizationRequest, AuthorizationGrant]:
        """Approve a pending request and create its lesson grant.

        The status flip is a compare-and-swap on ``status = 'pending'``. If
        the grant cannot be written afterwards, the request is put back to
        pending and the error propagates.

        Raises:
            NotFoundError: Unknown request
            AlreadyProcessedError: Request is not pending
            ValidationError: Expiry in the past
        """
        request = await self.get(request_id)
        self._ensure_pending(request)

        expires_at = ensure_utc_aware(expires_at)
        if expires_at is not None and expires_at <= datetime.now(UTC):
            raise ValidationError("A data de expiracao deve estar no futuro")

        grant = create_lesson_grant_for_request(request, admin_id, reason, expires_at)

        applied = await self.requests.transition(
            request, RequestStatus.APPROVED, admin_id, grant_id=grant.grant_id
        )
        if not applied:
            await self._raise_lost_race(request_id)

        try:
            await self.grants.insert(grant)
        except Exception:
            logger.exception(
                "authorization_grant_write_failed",
                request_id=str(request_id),
                grant_id=str(grant.grant_id),
            )
            await self._revert_approval(request)
            raise

        await self._sync_indexes(request)

        logger.info(
            "authorization_request_approved",
            request_id=str(request_id),
            grant_id=str(grant.grant_id),
            admin_id=str(admin_id),
        )
        return request, grant

    async def reject(
        self, request_id: UUID, admin_id: UUID, reason: str
    ) -> AuthorizationRequest:
        """Reject a pending request. No grant is created.

        Raises:
            ValidationError: Missing reason
            NotFoundError: Unknown request
            AlreadyProcessedError: Request is not pending
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("O motivo da rejeicao e obrigatorio")

        request = await self.get(request_id)
        self._ensure_pending(request)

        applied = await self.requests.transition(
            request, RequestStatus.REJECTED, admin_id, rejection_reason=reason
        )
        if not applied:
            await self._raise_lost_race(request_id)

        await self._sync_indexes(request)

        logger.info(
            "authorization_request_rejected",
            request_id=str(request_id),
            admin_id=str(admin_id),
        )
        return request

    def _ensure_pending(self, request: AuthorizationRequest) -> None:
        if not request.is_pending:
            raise AlreadyProcessedError(request.request_id, request.status.value)

    async def _raise_lost_race(self, request_id: UUID) -> NoReturn:
        current = await self.requests.get(request_id)
        logger.info(
            "authorization_request_concurrently_processed",
            request_id=str(request_id),
        )
        raise AlreadyProcessedError(
            request_id, current.status.value if current else None
        )

    async def _revert_approval(self, request: AuthorizationRequest) -> None:
        try:
            reverted = await self.requests.revert_approval(request)
        except Exception:
            logger.exception(
                "authorization_request_revert_failed",
                request_id=str(request.request_id),
            )
            return
        if reverted:
            request.status = RequestStatus.PENDING
            request.grant_id = None
            request.processed_by = None
            request.processed_at = None

    async def _sync_indexes(self, request: AuthorizationRequest) -> None:
        # The main table is already authoritative; lookup tables catch up
        try:
            await self.requests.sync_indexes(request, RequestStatus.PENDING)
        except Exception:
            logger.exception(
                "authorization_request_index_sync_failed",
                request_id=str(request.request_id),
            )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get(self, request_id: UUID) -> AuthorizationRequest:
        request = await self.requests.get(request_id)
        if request is None:
            raise NotFoundError("Solicitacao nao encontrada")
        return request

    async def list_pending(self, limit: int | None = None) -> list[AuthorizationRequest]:
        """Pending requests, oldest first."""
        return await self.requests.list_by_status(
            RequestStatus.PENDING, limit or self.page_size
        )

    async def list_for_user(
        self, user_id: UUID, limit: int = 50
    ) -> list[AuthorizationRequest]:
        return await self.requests.list_by_user(user_id, limit)
