import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_SECRET_KEY"] = "classkey-test-secret-key-0123456789abcdef"
os.environ["APP_ENV"] = "development"

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from classkey.database import get_db
from classkey.models import AccessCode, Base, CodeKind, CodeStatus
from classkey.services.access_code_service import AccessCodeService
from classkey.utils.security import create_access_token

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
SCHOOL_ID = uuid.UUID("0192d6a0-0000-7000-8000-000000000001")
COURSE_ID = uuid.UUID("0192d6a0-0000-7000-8000-000000000002")
ADMIN_ID = uuid.UUID("0192d6a0-0000-7000-8000-0000000000a1")
TEACHER_ID = uuid.UUID("0192d6a0-0000-7000-8000-0000000000b1")


class FakeClock:
    """Mutable clock handed to services instead of the wall clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return AccessCodeService(clock=clock, tolerance=timedelta(minutes=5))


@pytest.fixture
def make_code(session, clock):
    """Insert a code row directly, bypassing issuance rules."""

    async def _make(**overrides) -> AccessCode:
        values = {
            "code": "ABC12345",
            "kind": CodeKind.COURSE_ENROLLMENT.value,
            "target_id": COURSE_ID,
            "required_role": "STUDENT",
            "required_email": None,
            "issuer_id": TEACHER_ID,
            "is_active": True,
            "created_at": clock(),
            "expires_at": None,
            "max_uses": None,
            "current_uses": 0,
            "status": CodeStatus.PENDING.value,
        }
        values.update(overrides)
        access_code = AccessCode(**values)
        session.add(access_code)
        await session.commit()
        return access_code

    return _make


@pytest.fixture
async def client(session_factory):
    from classkey.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(
    role: str,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
    tenant_id: uuid.UUID | None = SCHOOL_ID,
) -> dict[str, str]:
    token = create_access_token(user_id or uuid.uuid4(), tenant_id=tenant_id, role=role, email=email)
    return {"Authorization": f"Bearer {token}"}
