"""Access token handling.

Tokens are issued by the identity service; this API only validates them.
``create_access_token`` exists for tooling and tests that need a token
signed with the shared secret.

Claims:
- sub: user id
- role: "student" or "admin"
- type: "access"
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from src.config.settings import get_settings


def create_access_token(
    user_id: UUID | str,
    role: str,
    expires_delta: timedelta | None = None,
    **claims: Any,
) -> str:
    """Create a signed JWT access token.

    Args:
        user_id: Subject of the token
        role: User role claim
        expires_delta: Token lifetime (default from settings)
        **claims: Extra claims copied into the payload

    Returns:
        Encoded JWT string
    """
    settings = get_settings()

    now = datetime.now(UTC)
    expire = now + (
        expires_delta or timedelta(minutes=settings.auth_access_token_expire_minutes)
    )

    to_encode = {
        **claims,
        "sub": str(user_id),
        "role": role,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(
        to_encode,
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"
    - Presence of the sub claim

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    if not payload.get("sub"):
        msg = "Token without subject"
        raise JWTError(msg)

    return payload
