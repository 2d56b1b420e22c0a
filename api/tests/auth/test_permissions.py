"""Tests for auth permissions and the authenticated caller."""

from uuid import uuid4

import pytest

from src.auth.permissions import UserRole, is_admin
from src.auth.schemas import AuthenticatedUser


class TestUserRole:
    def test_role_values(self) -> None:
        """Roles should have correct string values."""
        assert UserRole.STUDENT.value == "student"
        assert UserRole.ADMIN.value == "admin"


class TestIsAdmin:
    @pytest.mark.parametrize(
        "role,expected",
        [
            (UserRole.ADMIN, True),
            ("admin", True),
            (UserRole.STUDENT, False),
            ("student", False),
            ("teacher", False),
            (None, False),
        ],
    )
    def test_is_admin(self, role, expected: bool) -> None:
        assert is_admin(role) is expected


class TestAuthenticatedUser:
    def test_defaults_to_student(self) -> None:
        user = AuthenticatedUser(id=uuid4())
        assert user.role == "student"
        assert user.is_admin is False

    def test_admin(self) -> None:
        assert AuthenticatedUser(id=uuid4(), role="admin").is_admin is True

    def test_accepts_string_id(self) -> None:
        user_id = uuid4()
        assert AuthenticatedUser(id=str(user_id)).id == user_id
