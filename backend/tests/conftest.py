"""
TenantNotes Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Each test gets a fresh in-memory SQLite database (aiosqlite, one
       shared connection via StaticPool) with the full schema created from
       the ORM metadata. Two tenants are provisioned by `tenants`:

           acme    free plan (limit 3)   admin + member
           globex  free plan (limit 3)   admin

Fixture Hierarchy:
    engine → session_factory → db_session        (service tests)
                             → tenants           (seed data)
                             → client            (HTTP tests, get_db_session overridden)
    mock_db_session                               (pure mock, no database)
"""

import os
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

# Settings are read at import time; set the test environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret-not-for-production-use-only"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["FREE_PLAN_NOTE_LIMIT"] = "3"
os.environ["PRO_PLAN_NOTE_LIMIT"] = "1000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tenantnotes.database import Base, configure_sqlite, get_db_session
from tenantnotes.models.note import Note  # noqa: F401
from tenantnotes.models.tenant import Tenant, User
from tenantnotes.security import create_access_token
from tenantnotes.services.access_guard import Principal, Role
from tenantnotes.services.tenant_service import tenant_service


@dataclass
class SeededTenant:
    tenant: Tenant
    admin: User
    member: User = None


@dataclass
class Seed:
    acme: SeededTenant
    globex: SeededTenant


def principal_for(user: User) -> Principal:
    """The Principal the auth dependency would build for this user."""
    return Principal(id=user.id, tenant_id=user.tenant_id, role=Role(user.role))


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def tenants(session_factory) -> Seed:
    """Provision acme (admin + member) and globex (admin), committed."""
    async with session_factory() as session:
        acme, acme_admin = await tenant_service.provision_tenant(
            session, slug="acme", name="Acme Corp", admin_email="admin@acme.test"
        )
        acme_member = User(tenant_id=acme.id, email="user@acme.test", role="member")
        session.add(acme_member)

        globex, globex_admin = await tenant_service.provision_tenant(
            session, slug="globex", name="Globex", admin_email="admin@globex.test"
        )
        await session.commit()

    return Seed(
        acme=SeededTenant(tenant=acme, admin=acme_admin, member=acme_member),
        globex=SeededTenant(tenant=globex, admin=globex_admin),
    )


@pytest.fixture
def mock_db_session():
    """
    A mock async session for tests that must not touch a database.

    begin_nested() is a MagicMock so that `async with db.begin_nested():`
    works (MagicMock supports the async context manager protocol).
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(session_factory):
    """
    HTTPX AsyncClient talking to the app through ASGITransport, with the
    request session bound to the test database.
    """
    from tenantnotes.main import app

    async def _test_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
