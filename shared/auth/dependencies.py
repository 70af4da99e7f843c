"""
FastAPI Authentication Dependencies
===================================

Dependency injection for route protection. Ownership of checks, panels,
reports and custom rules is enforced in the services against `User.id`;
rule and source administration requires the `admin` role.

Version: 0.1.0
"""

import uuid
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from shared.auth.jwt import decode_token
from shared.logging import get_logger


logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"


class User(BaseModel):
    """Authenticated user model for dependency injection."""

    id: uuid.UUID = Field(..., description="User ID")
    email: str | None = Field(default=None, description="User email")
    roles: list[str] = Field(default_factory=list, description="User roles")

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    """
    Extract and validate user from the bearer token.

    Raises:
        HTTPException: 401 if token is missing or invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("auth_token_missing")
        raise credentials_exception

    token_data = decode_token(credentials.credentials)
    if token_data is None:
        logger.warning("auth_token_invalid")
        raise credentials_exception

    try:
        user_id = uuid.UUID(token_data.sub)
    except ValueError:
        logger.warning("auth_subject_not_uuid", sub=token_data.sub)
        raise credentials_exception from None

    return User(id=user_id, email=token_data.email, roles=token_data.roles)


def require_roles(required_roles: list[str]) -> Callable[..., User]:
    """
    Create a dependency that requires any of the given roles.

    Usage:
        @router.post("/rules")
        async def create_rule(user: User = Depends(require_roles(["admin"]))):
            ...
    """

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if not set(required_roles).intersection(current_user.roles):
            logger.warning(
                "insufficient_roles",
                user_id=str(current_user.id),
                user_roles=current_user.roles,
                required_roles=required_roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return role_checker


require_admin = require_roles([ADMIN_ROLE])

CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
