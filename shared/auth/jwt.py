"""
JWT Token Management
====================

Token issuing and validation. Tokens are minted by the identity provider in
deployed environments; `create_access_token` exists for scripts and tests.

Version: 0.1.0
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, Field

from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


class TokenData(BaseModel):
    """Decoded JWT token payload."""

    sub: str = Field(..., description="Subject (user ID)")
    roles: list[str] = Field(default_factory=list, description="User roles")
    exp: datetime = Field(..., description="Expiration time")
    iat: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Issued at")
    email: str | None = None


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        data: Payload data (must include 'sub' for user ID)
        expires_delta: Custom expiration time (default from settings)

    Returns:
        str: Encoded JWT token
    """
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt.access_token_expire_minutes))

    to_encode = {**data, "exp": expire, "iat": now}

    encoded_jwt = jwt.encode(
        to_encode,
        settings.jwt.secret_key.get_secret_value(),
        algorithm=settings.jwt.algorithm,
    )

    logger.debug("access_token_created", sub=data.get("sub"), expires_at=expire.isoformat())
    return encoded_jwt


def decode_token(token: str) -> TokenData | None:
    """
    Decode and validate a JWT token.

    Returns:
        TokenData, or None when the signature, expiry or payload is invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt.secret_key.get_secret_value(),
            algorithms=[settings.jwt.algorithm],
        )
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        return None

    if "sub" not in payload or "exp" not in payload:
        logger.warning("token_missing_claims", claims=sorted(payload))
        return None

    roles = payload.get("roles", [])
    if isinstance(roles, str):
        roles = [roles]

    return TokenData(
        sub=str(payload["sub"]),
        roles=roles,
        exp=datetime.fromtimestamp(payload["exp"], tz=UTC),
        iat=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
        email=payload.get("email"),
    )
