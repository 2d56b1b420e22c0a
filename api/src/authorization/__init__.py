"""Lesson authorization module.

Provides:
- Access evaluation (completion and grants)
- Authorization request workflow
- Direct grant management
- Next-lesson auto-chain
"""

from .models import (
    AUTHORIZATION_TABLES_CQL,
    AuthorizationGrant,
    AuthorizationRequest,
    GrantKind,
    RequestOrigin,
    RequestStatus,
)


__all__ = [
    "AUTHORIZATION_TABLES_CQL",
    "AuthorizationGrant",
    "AuthorizationRequest",
    "GrantKind",
    "RequestOrigin",
    "RequestStatus",
]
