"""
Test fixtures for the identity service test suite.

This module provides shared fixtures used across all test files:

  - db_engine / session_factory / db_session: Fresh in-memory SQLite database
    for each test, plus sessions for service-level tests
  - notifier: Records every outgoing email/SMS so tests can read the codes
  - client_factory / client: Async HTTP test clients (unauthenticated)
  - register_account / login: Helpers driving the real HTTP flows
  - auth_user / second_auth_user: Registered, verified, logged-in USER accounts
  - admin_user: A USER holding the built-in "admin" role

Key design decisions:
  - Required secrets are set in the environment before authcore is imported,
    because the settings singleton is built at import time. Password hashing
    cost is lowered so the suite stays fast.
  - We override get_db with the same commit semantics as production: commit
    on success AND on domain errors (lockout counters must survive a
    rejected login), roll back on anything else.
  - Each authenticated fixture gets its own AsyncClient, so two logged-in
    accounts never share an Authorization header.
"""

import os

os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-fedcba9876543210")
os.environ.setdefault("MFA_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH_MEMORY_COST", "1024")

import re
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from authcore import models  # noqa: F401
from authcore.database import Base, get_db
from authcore.exceptions import AuthCoreError
from authcore.main import app
from authcore.models.account import AccountKind
from authcore.services import rbac_service
from authcore.services.notification_service import get_notifier


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

DEFAULT_PASSWORD = "SecurePass123!"

_CODE_RE = re.compile(r"\b(\d{6})\b")


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------

@dataclass
class SentMessage:
    destination: str
    subject: str | None
    content: str


class RecordingNotifier:
    """Keeps every message instead of delivering it."""

    def __init__(self):
        self.sent: list[SentMessage] = []

    async def send(self, destination: str, content: str, *, subject: str | None = None) -> None:
        self.sent.append(SentMessage(destination, subject, content))

    def last_code(self, destination: str) -> str:
        """The 6-digit code in the most recent message to destination."""
        for message in reversed(self.sent):
            if message.destination == destination:
                return _CODE_RE.search(message.content).group(1)
        raise AssertionError(f"No message was sent to {destination}")


class FailingNotifier:
    """Simulates a delivery provider that is down."""

    def __init__(self):
        self.attempts = 0

    async def send(self, destination: str, content: str, *, subject: str | None = None) -> None:
        self.attempts += 1
        raise ConnectionError("provider unavailable")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine (service-level tests)."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client_factory(session_factory, notifier):
    """
    Build AsyncClients against the app with the test database and notifier
    injected. Every client is closed at teardown.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except AuthCoreError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncExitStack() as stack:

        async def make_client() -> AsyncClient:
            return await stack.enter_async_context(
                AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
            )

        yield make_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(client_factory):
    return await client_factory()


# ---------------------------------------------------------------------------
# Flow helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def register_account(notifier):
    """
    Register through the API and (by default) confirm the email code.

    Returns the new account id as a string.
    """

    async def _register(
        client: AsyncClient,
        email: str,
        password: str = DEFAULT_PASSWORD,
        kind: str = "user",
        verify: bool = True,
        **extra,
    ) -> str:
        body = {"email": email, "password": password, "firstName": "Test", "lastName": "User", **extra}
        path = "/auth/register"
        if kind == "agency":
            path = "/auth/register/agency"
            body.setdefault("agencyName", "Test Agency")
            body.setdefault("businessType", "travel")

        response = await client.post(path, json=body)
        assert response.status_code == 201, f"Register failed: {response.text}"
        account_id = response.json()["userId"]

        if verify:
            verified = await client.post(
                "/auth/verify-email",
                json={"email": email, "accountType": kind, "code": notifier.last_code(email)},
            )
            assert verified.status_code == 200, f"Verify failed: {verified.text}"
        return account_id

    return _register


@pytest.fixture
def login():
    async def _login(
        client: AsyncClient,
        email: str,
        password: str = DEFAULT_PASSWORD,
        kind: str = "user",
        mfa_code: str | None = None,
    ) -> Response:
        body = {"email": email, "password": password, "accountType": kind}
        if mfa_code is not None:
            body["mfaCode"] = mfa_code
        return await client.post("/auth/login", json=body)

    return _login


@dataclass
class AuthedUser:
    client: AsyncClient
    account_id: uuid.UUID
    email: str
    password: str
    access_token: str
    refresh_token: str


async def _authenticated(client_factory, register_account, login, email: str, kind: str = "user") -> AuthedUser:
    client = await client_factory()
    account_id = await register_account(client, email, kind=kind)
    response = await login(client, email, kind=kind)
    assert response.status_code == 200, f"Login failed: {response.text}"
    data = response.json()
    client.headers["Authorization"] = f"Bearer {data['accessToken']}"
    return AuthedUser(
        client=client,
        account_id=uuid.UUID(account_id),
        email=email,
        password=DEFAULT_PASSWORD,
        access_token=data["accessToken"],
        refresh_token=data["refreshToken"],
    )


@pytest_asyncio.fixture
async def auth_user(client_factory, register_account, login):
    """A registered, verified and logged-in USER."""
    return await _authenticated(client_factory, register_account, login, "testuser@example.com")


@pytest_asyncio.fixture
async def second_auth_user(client_factory, register_account, login):
    """A second logged-in USER for cross-account tests."""
    return await _authenticated(client_factory, register_account, login, "seconduser@example.com")


@pytest_asyncio.fixture
async def admin_user(client_factory, register_account, login, session_factory):
    """
    A USER holding the built-in admin role.

    The account signs up normally; the role is granted directly in the
    database, the way an operator would provision the first administrator.
    """
    admin = await _authenticated(client_factory, register_account, login, "admin@example.com")
    async with session_factory() as session:
        await rbac_service.ensure_default_catalogue(session)
        await rbac_service.assign_role(session, admin.account_id, AccountKind.USER, "admin")
        await session.commit()
    return admin


@pytest.fixture
def failing_notifier(client_factory):
    """Swap in a notifier whose provider is down for the rest of the test."""
    failing = FailingNotifier()
    app.dependency_overrides[get_notifier] = lambda: failing
    return failing
