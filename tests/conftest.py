"""
Test Configuration
==================

Pytest fixtures for Labelwise tests: an in-memory SQLite database per test,
a scripted fake AI provider, JWT headers, and ASGI clients for both
services.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["POSTGRES_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MONITOR_SCHEDULER_ENABLED"] = "false"

from shared.database.models import (  # noqa: E402
    ComplianceRuleModel,
    RegulatorySourceModel,
    Severity,
    StateModel,
)
from shared.database.postgres import Base, get_postgres_session  # noqa: E402
from shared.llm import LLMProvider, LLMResponse  # noqa: E402
from shared.llm.provider import LLMMessage  # noqa: E402
from shared.storage import ObjectStore  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def montana(db_session: AsyncSession) -> StateModel:
    """Enabled Montana state."""
    state = StateModel(name="Montana", abbreviation="MT", is_enabled=True)
    db_session.add(state)
    await db_session.commit()
    return state


@pytest_asyncio.fixture
async def warning_rule(db_session: AsyncSession, montana: StateModel) -> ComplianceRuleModel:
    """Active Montana rule applying to every product type."""
    rule = ComplianceRuleModel(
        state_id=montana.id,
        name="Keep Out of Reach Warning",
        description="Label must state 'Keep out of reach of children'",
        category="Warnings",
        severity=Severity.ERROR,
        citation="ARM 42.39.310",
        validation_prompt="Verify the keep-out-of-reach statement is present",
    )
    db_session.add(rule)
    await db_session.commit()
    return rule


@pytest_asyncio.fixture
async def montana_source(db_session: AsyncSession, montana: StateModel) -> RegulatorySourceModel:
    source = RegulatorySourceModel(
        state_id=montana.id,
        state=montana,
        source_name="Montana Administrative Rules",
        source_url="https://rules.mt.gov/",
        check_frequency_days=7,
    )
    db_session.add(source)
    await db_session.commit()
    await db_session.refresh(source)
    return source


# ============================================================================
# AI provider
# ============================================================================


class FakeLLMProvider(LLMProvider):
    """
    Scripted provider. Each call consumes the next reply; an exception in
    the script is raised instead of returned.
    """

    def __init__(self, *replies: str | Exception) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return "fake-model"

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: str | None = None,
    ) -> LLMResponse:
        self.calls.append(
            {
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "response_format": response_format,
            }
        )
        if not self.replies:
            raise AssertionError("FakeLLMProvider ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, model=self.model, provider=self.name)

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "provider": self.name}

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][-1].content

    @property
    def last_system_prompt(self) -> str | None:
        messages = self.calls[-1]["messages"]
        return messages[0].content if messages[0].role_name == "system" else None


@pytest.fixture
def fake_llm() -> type[FakeLLMProvider]:
    return FakeLLMProvider


# ============================================================================
# Object storage
# ============================================================================


@pytest.fixture
def minio_client() -> MagicMock:
    """MinIO client double; presigned URLs echo bucket and key."""
    client = MagicMock()
    client.bucket_exists.return_value = True
    client.presigned_get_object.side_effect = (
        lambda bucket, key, expires: f"https://minio.test/{bucket}/{key}?X-Amz-Signature=test"
    )
    return client


@pytest.fixture
def object_store(minio_client: MagicMock) -> ObjectStore:
    return ObjectStore(client=minio_client)


# ============================================================================
# Auth
# ============================================================================


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-4111-8111-111111111111")


@pytest.fixture
def admin_id() -> uuid.UUID:
    return uuid.UUID("22222222-2222-4222-8222-222222222222")


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    """Bearer headers for a regular user."""
    from shared.auth import create_access_token

    token = create_access_token({
        "sub": str(user_id),
        "email": "user@labelwise.test",
        "roles": ["user"],
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_id: uuid.UUID) -> dict[str, str]:
    """Bearer headers for an admin."""
    from shared.auth import create_access_token

    token = create_access_token({
        "sub": str(admin_id),
        "email": "admin@labelwise.test",
        "roles": ["user", "admin"],
    })
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Service clients
# ============================================================================


def _session_override(session: AsyncSession) -> Any:
    async def override() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    return override


@pytest_asyncio.fixture
async def regulatory_monitor_client(
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Regulatory Monitor Service."""
    from services.regulatory_monitor.main import app

    app.dependency_overrides[get_postgres_session] = _session_override(db_session)
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def label_compliance_client(
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Label Compliance Service."""
    from services.label_compliance.main import app

    app.dependency_overrides[get_postgres_session] = _session_override(db_session)
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
