"""
Database Module
===============

Async relational store access (SQLAlchemy 2.0; asyncpg in production,
aiosqlite for local runs and tests) and the shared ORM models.

Usage:
    from shared.database import get_postgres_session

    @router.get("/rules")
    async def list_rules(
        db: AsyncSession = Depends(get_postgres_session),
    ):
        result = await db.execute(select(ComplianceRuleModel))
        ...
"""

from shared.database.postgres import (
    Base,
    PostgresClient,
    as_utc,
    get_postgres_session,
    postgres_session,
    utcnow,
)


__all__ = [
    "Base",
    "PostgresClient",
    "as_utc",
    "get_postgres_session",
    "postgres_session",
    "utcnow",
]
