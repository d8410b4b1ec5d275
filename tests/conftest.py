import os
import uuid
from datetime import datetime, timedelta, timezone

# settings are read at import time; point them at a throwaway sqlite file
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite:///./.pytest-patientflow.db")
os.environ.setdefault("OUTBOX_RELAY_ENABLED", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from patientflow.core.base import Base
from patientflow.core.db import get_session
from patientflow.core.security import Principal, issue_token
from patientflow.main import app
import patientflow.modules.visits.models  # noqa: F401
import patientflow.modules.audit.models  # noqa: F401
import patientflow.modules.events.outbox  # noqa: F401

ORG_ID = uuid.UUID(int=1)


class FakeClock:
    """Hands out strictly increasing times, one second apart unless told otherwise."""
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 1):
        self.current += timedelta(seconds=seconds)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'visits.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock()


def make_principal(*roles: str) -> Principal:
    return Principal(user_id=uuid.uuid4(), org_id=ORG_ID, roles=list(roles))


@pytest.fixture
def patient():
    return make_principal("patient")


@pytest.fixture
def staff():
    return make_principal("staff")


@pytest.fixture
def doctor():
    return make_principal("doctor")


def auth_headers(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {issue_token(principal.user_id, principal.roles, principal.org_id)}"}


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
