"""Pydantic schemas for the authenticated caller."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .permissions import UserRole, is_admin


class AuthenticatedUser(BaseModel):
    """Identity extracted from a validated access token."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    role: str = UserRole.STUDENT.value

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
