"""User roles.

Only two levels exist: learners and admins. Admins process authorization
requests, manage grants and bypass the lesson unlock checks.
"""

from enum import Enum


class UserRole(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


def is_admin(role: UserRole | str | None) -> bool:
    """Check if a role claim is the admin role."""
    if role is None:
        return False
    try:
        return UserRole(role) == UserRole.ADMIN
    except ValueError:
        return False
