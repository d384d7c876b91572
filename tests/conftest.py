"""
Pytest fixtures for Identity Bridge tests.
"""

import os

# Settings are read at import time by identity_bridge.database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-admin-secret-key-for-tests-only")

from typing import AsyncGenerator, Callable, Dict, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from identity_bridge.kernel.identity.local_store import LocalIdentityStore
from identity_bridge.kernel.models import Base
from identity_bridge.services.legacy_client import (
    LegacyAuthorization,
    LegacyIdentityClient,
    LegacyUserSnapshot,
)
from identity_bridge.kernel.exceptions import (
    InvalidCredentials,
    LegacyCreateFailed,
    LegacyUnavailable,
)


# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_SECRET = os.environ["SECRET_KEY"]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def local_store(db_session: AsyncSession) -> LocalIdentityStore:
    return LocalIdentityStore(db_session)


class FakeLegacyClient:
    """
    In-memory stand-in for LegacyIdentityClient.

    ``users`` maps email -> (password, snapshot). Calls are recorded in
    ``calls`` as (operation, email) tuples.
    """

    def __init__(self):
        self.users: Dict[str, tuple[str, LegacyUserSnapshot]] = {}
        self.calls: list[tuple[str, str]] = []
        self.created_payloads: list[dict] = []
        self.unavailable = False
        self.create_error: Optional[str] = None

    def add_user(self, email: str, password: str, first_name: str = "", last_name: str = "") -> LegacyUserSnapshot:
        snapshot = LegacyUserSnapshot(
            email=email,
            id=len(self.users) + 1,
            username=email,
            first_name=first_name,
            last_name=last_name,
            confirmed=True,
            active=True,
        )
        self.users[email] = (password, snapshot)
        return snapshot

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    async def check_user(self, email: str) -> Optional[LegacyUserSnapshot]:
        self.calls.append(("check-user", email))
        if self.unavailable:
            raise LegacyUnavailable("check-user", "connection refused")
        record = self.users.get(email)
        return record[1] if record else None

    async def authorize(self, email: str, password: str) -> LegacyAuthorization:
        self.calls.append(("authorize", email))
        if self.unavailable:
            raise LegacyUnavailable("authorize", "connection refused")
        record = self.users.get(email)
        if record is None or record[0] != password:
            raise InvalidCredentials()
        return LegacyAuthorization(access_token=f"legacy-{email}", expires_in=3600)

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        username: Optional[str] = None,
    ) -> LegacyUserSnapshot:
        self.calls.append(("create-user", email))
        self.created_payloads.append({
            "email": email,
            "password": password,
            "firstname": first_name,
            "lastname": last_name,
            "username": username,
        })
        if self.create_error:
            raise LegacyCreateFailed(self.create_error)
        return self.add_user(email, password, first_name, last_name)

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_legacy() -> FakeLegacyClient:
    return FakeLegacyClient()


@pytest.fixture
def mock_legacy_factory() -> Callable[..., LegacyIdentityClient]:
    """Build a real LegacyIdentityClient over an httpx.MockTransport."""

    def factory(handler, **kwargs) -> LegacyIdentityClient:
        kwargs.setdefault("base_url", "http://legacy.test")
        kwargs.setdefault("services_secret", "services-secret")
        kwargs.setdefault("retry_backoff", (0.0,))
        return LegacyIdentityClient(transport=httpx.MockTransport(handler), **kwargs)

    return factory
