"""Lesson authorization API endpoints.

Provides routes for:
- Checking access to a lesson
- Learner requests for a lesson
- Admin queue, approval and rejection
- Direct grant management
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import AdminUser, CurrentUser

from .dependencies import EvaluatorDep, GrantServiceDep, WorkflowDep
from .models import RequestOrigin
from .schemas import (
    AccessCheckResponse,
    ApproveRequestBody,
    ApproveRequestResponse,
    AuthorizationRequestListResponse,
    AuthorizationRequestResponse,
    CreateGrantRequest,
    GrantListResponse,
    GrantResponse,
    RejectRequestBody,
    RejectRequestResponse,
    SubmitRequestBody,
    SubmitRequestResponse,
)


router = APIRouter(prefix="/v1/authorization", tags=["authorization"])
admin_router = APIRouter(
    prefix="/v1/admin/authorization", tags=["admin-authorization"]
)


# ==============================================================================
# Learner Endpoints
# ==============================================================================


@router.get(
    "/check",
    response_model=AccessCheckResponse,
    summary="Check lesson access",
)
async def check_access(
    evaluator: EvaluatorDep,
    user: CurrentUser,
    course_id: UUID = Query(...),
    lesson_id: UUID = Query(...),
) -> AccessCheckResponse:
    """Whether the caller may open a lesson, and why.

    A subject outside the caller's track is rejected with 403 before the
    lesson unlock is evaluated.
    """
    await evaluator.ensure_eligible(user.id, course_id)
    decision = await evaluator.evaluate(user.id, course_id, lesson_id)
    return AccessCheckResponse(
        permitted=decision.permitted, reason=decision.reason.value
    )


@router.post(
    "/requests",
    response_model=SubmitRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request access to a lesson",
)
async def submit_request(
    data: SubmitRequestBody,
    evaluator: EvaluatorDep,
    workflow: WorkflowDep,
    user: CurrentUser,
) -> SubmitRequestResponse:
    """Create a pending request. 409 if one is already pending."""
    await evaluator.ensure_eligible(user.id, data.course_id)
    result = await workflow.submit(
        user.id,
        data.course_id,
        data.lesson_id,
        origin=RequestOrigin.MANUAL,
        reason=data.reason,
    )
    return SubmitRequestResponse(request_id=result.request_id)


@router.get(
    "/requests/me",
    response_model=AuthorizationRequestListResponse,
    summary="List my requests",
)
async def list_my_requests(
    workflow: WorkflowDep,
    user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
) -> AuthorizationRequestListResponse:
    requests = await workflow.list_for_user(user.id, limit)
    items = [AuthorizationRequestResponse.from_entity(r) for r in requests]
    return AuthorizationRequestListResponse(items=items, total=len(items))


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.get(
    "/requests",
    response_model=AuthorizationRequestListResponse,
    summary="Pending request queue",
)
async def list_pending_requests(
    workflow: WorkflowDep,
    _admin: AdminUser,
    limit: int | None = Query(None, ge=1, le=500),
) -> AuthorizationRequestListResponse:
    """Pending requests, oldest first."""
    requests = await workflow.list_pending(limit)
    items = [AuthorizationRequestResponse.from_entity(r) for r in requests]
    return AuthorizationRequestListResponse(items=items, total=len(items))


@admin_router.post(
    "/requests/{request_id}/approve",
    response_model=ApproveRequestResponse,
    summary="Approve a request",
)
async def approve_request(
    request_id: UUID,
    workflow: WorkflowDep,
    admin: AdminUser,
    data: ApproveRequestBody | None = None,
) -> ApproveRequestResponse:
    """Approve a pending request, creating a lesson grant.

    404 for an unknown request, 400 when it was already processed.
    """
    data = data or ApproveRequestBody()
    request, grant = await workflow.approve(
        request_id, admin.id, reason=data.reason, expires_at=data.expires_at
    )
    return ApproveRequestResponse(
        request=AuthorizationRequestResponse.from_entity(request),
        grant=GrantResponse.from_entity(grant),
    )


@admin_router.post(
    "/requests/{request_id}/reject",
    response_model=RejectRequestResponse,
    summary="Reject a request",
)
async def reject_request(
    request_id: UUID,
    data: RejectRequestBody,
    workflow: WorkflowDep,
    admin: AdminUser,
) -> RejectRequestResponse:
    request = await workflow.reject(request_id, admin.id, data.reason)
    return RejectRequestResponse(
        request=AuthorizationRequestResponse.from_entity(request)
    )


@admin_router.post(
    "/grants",
    response_model=GrantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Grant access directly",
)
async def create_grant(
    data: CreateGrantRequest,
    grant_service: GrantServiceDep,
    admin: AdminUser,
) -> GrantResponse:
    grant = await grant_service.create_grant(
        user_id=data.user_id,
        course_id=data.course_id,
        kind=data.kind,
        granted_by=admin.id,
        module_id=data.module_id,
        lesson_id=data.lesson_id,
        expires_at=data.expires_at,
        reason=data.reason,
    )
    return GrantResponse.from_entity(grant)


@admin_router.get(
    "/grants",
    response_model=GrantListResponse,
    summary="List grants of a user in a course",
)
async def list_grants(
    grant_service: GrantServiceDep,
    _admin: AdminUser,
    user_id: UUID = Query(...),
    course_id: UUID = Query(...),
    active_only: bool = Query(False),
) -> GrantListResponse:
    grants = await grant_service.list_grants(user_id, course_id, active_only)
    items = [GrantResponse.from_entity(g) for g in grants]
    return GrantListResponse(items=items, total=len(items))


@admin_router.delete(
    "/grants/{user_id}/{course_id}/{grant_id}",
    response_model=GrantResponse,
    summary="Revoke a grant",
)
async def revoke_grant(
    user_id: UUID,
    course_id: UUID,
    grant_id: UUID,
    grant_service: GrantServiceDep,
    admin: AdminUser,
) -> GrantResponse:
    grant = await grant_service.revoke_grant(user_id, course_id, grant_id, admin.id)
    return GrantResponse.from_entity(grant)
