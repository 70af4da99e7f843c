"""
Authentication Module
=====================

JWT bearer authentication and role checks for Labelwise services.

Usage:
    from shared.auth import AdminUser, CurrentUser

    @router.get("/checks")
    async def list_checks(user: CurrentUser):
        ...

    @router.post("/suggestions/{suggestion_id}/approve")
    async def approve(suggestion_id: UUID, admin: AdminUser):
        ...
"""

from shared.auth.jwt import (
    create_access_token,
    decode_token,
    TokenData,
)
from shared.auth.dependencies import (
    ADMIN_ROLE,
    AdminUser,
    CurrentUser,
    User,
    bearer_scheme,
    get_current_user,
    require_admin,
    require_roles,
)

__all__ = [
    # JWT
    "create_access_token",
    "decode_token",
    "TokenData",
    # Dependencies
    "ADMIN_ROLE",
    "AdminUser",
    "CurrentUser",
    "User",
    "bearer_scheme",
    "get_current_user",
    "require_admin",
    "require_roles",
]
