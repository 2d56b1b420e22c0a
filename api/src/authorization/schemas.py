"""Pydantic schemas for lesson authorization.

Request and response models for:
- Access checks
- Authorization requests (learner and admin queue)
- Direct grants
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import (
    AuthorizationGrant,
    AuthorizationRequest,
    GrantKind,
    RequestOrigin,
    RequestStatus,
)


# ==============================================================================
# Access Check Schemas
# ==============================================================================


class AccessCheckResponse(BaseModel):
    permitted: bool
    reason: str


# ==============================================================================
# Request Schemas
# ==============================================================================


class SubmitRequestBody(BaseModel):
    """Learner asking access to a lesson."""

    course_id: UUID
    lesson_id: UUID
    reason: str | None = Field(default=None, max_length=500)


class SubmitRequestResponse(BaseModel):
    request_id: UUID
    status: RequestStatus = RequestStatus.PENDING


class ApproveRequestBody(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
    expires_at: datetime | None = Field(
        default=None, description="Grant expiry (omit for a permanent grant)"
    )


class RejectRequestBody(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class AuthorizationRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: UUID
    user_id: UUID
    course_id: UUID
    module_id: UUID
    lesson_id: UUID
    status: RequestStatus
    origin: RequestOrigin
    reason: str | None = None
    rejection_reason: str | None = None
    grant_id: UUID | None = None
    processed_by: UUID | None = None
    processed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: AuthorizationRequest) -> "AuthorizationRequestResponse":
        return cls.model_validate(entity)


class AuthorizationRequestListResponse(BaseModel):
    items: list[AuthorizationRequestResponse]
    total: int


# ==============================================================================
# Grant Schemas
# ==============================================================================


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    grant_id: UUID
    user_id: UUID
    course_id: UUID
    kind: GrantKind
    module_id: UUID | None = None
    lesson_id: UUID | None = None
    expires_at: datetime | None = None
    active: bool
    granted_by: UUID | None = None
    reason: str | None = None
    request_id: UUID | None = None
    created_at: datetime
    revoked_at: datetime | None = None
    revoked_by: UUID | None = None

    @classmethod
    def from_entity(cls, entity: AuthorizationGrant) -> "GrantResponse":
        return cls.model_validate(entity)


class ApproveRequestResponse(BaseModel):
    request: AuthorizationRequestResponse
    grant: GrantResponse


class RejectRequestResponse(BaseModel):
    request: AuthorizationRequestResponse


class CreateGrantRequest(BaseModel):
    """Admin unlocking a course, a module or a lesson directly."""

    user_id: UUID
    course_id: UUID
    kind: GrantKind
    module_id: UUID | None = None
    lesson_id: UUID | None = None
    expires_at: datetime | None = None
    reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def check_scope(self) -> "CreateGrantRequest":
        if self.kind == GrantKind.COURSE and (self.module_id or self.lesson_id):
            msg = "course grants take no module_id or lesson_id"
            raise ValueError(msg)
        if self.kind == GrantKind.MODULE and (not self.module_id or self.lesson_id):
            msg = "module grants take only module_id"
            raise ValueError(msg)
        if self.kind == GrantKind.LESSON and not self.lesson_id:
            msg = "lesson grants require lesson_id"
            raise ValueError(msg)
        return self


class GrantListResponse(BaseModel):
    items: list[GrantResponse]
    total: int
