# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Each test gets a fresh in-memory SQLite database."""

import os
import time

# Set test environment before importing the app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTH_JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["AUTH_JWT_AUDIENCE"] = "authenticated"
os.environ["APP_BASE_URL"] = "https://app.example.com"
os.environ["SMTP_HOST"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.pool import StaticPool

from tenantkit_server.auth import ExternalIdentity
from tenantkit_server.database import Database, get_db
from tenantkit_server.main import app
from tenantkit_server.models import Organization, User, UserRole
from tenantkit_server.rate_limit import reset_rate_limits

TEST_SECRET = "test-secret-key-for-testing-only"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
async def database(anyio_backend):
    db = Database(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await db.init_db()
    yield db
    await db.close()


@pytest.fixture
async def session(database):
    async with database.session_maker() as s:
        yield s


@pytest.fixture
async def client(database):
    async def override_get_db():
        async with database.session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Factory: Authorization headers carrying a provider-style access token."""

    def make(sub: str, email: str, full_name: str | None = None, **claims) -> dict:
        payload = {
            "sub": sub,
            "email": email,
            "aud": "authenticated",
            "exp": int(time.time()) + 3600,
        }
        if full_name:
            payload["user_metadata"] = {"full_name": full_name}
        payload.update(claims)
        return {"Authorization": f"Bearer {jwt.encode(payload, TEST_SECRET, algorithm='HS256')}"}

    return make


@pytest.fixture
async def org(session) -> Organization:
    o = Organization(name="Org One", domain="one")
    session.add(o)
    await session.commit()
    return o


@pytest.fixture
async def other_org(session) -> Organization:
    o = Organization(name="Org Two", domain="two")
    session.add(o)
    await session.commit()
    return o


@pytest.fixture
async def admin(session, org) -> User:
    user = User(
        organization=org,
        auth_user_id="auth-admin-a",
        email="admin@example.com",
        name="Admin A",
        role=UserRole.ORG_ADMIN,
        status="active",
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def member(session, org) -> User:
    user = User(
        organization=org,
        auth_user_id="auth-member",
        email="member@example.com",
        name="Member",
        role=UserRole.USER,
        status="active",
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def bob() -> ExternalIdentity:
    return ExternalIdentity(id="auth-bob", email="bob@x.com", profile_name="Bob Builder")
