from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, Dict, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token
from app.core.enums import RequestStatus, SessionStatus
from app.core.models import TutoringRequest, TutoringSession
from app.db.session import Base, get_db
from app.main import app
from seed_data import ADMIN_ID, COURSE_ID, STUDENT_ID, seed_directory


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def engine():
    """Fresh in-memory database per test. StaticPool keeps the single connection alive."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def directory_data(db_session: AsyncSession) -> None:
    await seed_directory(db_session)


@pytest.fixture()
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(user_id: int, roles: Iterable[str] = ("student",)) -> Dict[str, str]:
        token = create_access_token(user_id=user_id, roles=roles)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def admin_headers(auth_headers) -> Dict[str, str]:
    return auth_headers(ADMIN_ID, roles=("admin",))


@pytest.fixture()
def make_request(db_session: AsyncSession):
    """Insert a TutoringRequest directly in a given state; returns its id.

    Ids rather than instances: a failed service call rolls the shared session
    back and expires everything loaded in it.
    """

    async def _make(
        status: RequestStatus = RequestStatus.PENDING,
        student_id: int = STUDENT_ID,
        course_id: int = COURSE_ID,
        requested_tutor_id: Optional[int] = None,
        decline_reason: Optional[str] = None,
    ) -> int:
        req = TutoringRequest(
            student_id=student_id,
            course_id=course_id,
            requested_tutor_id=requested_tutor_id,
            status=status,
            decline_reason=decline_reason,
        )
        db_session.add(req)
        await db_session.commit()
        return req.id

    return _make


@pytest.fixture()
def make_session(db_session: AsyncSession):
    """Insert a TutoringSession directly, bypassing the quota check; returns its id."""

    async def _make(
        request_id: int,
        start_time: datetime,
        hours: float,
        status: SessionStatus = SessionStatus.SCHEDULED,
        tutor_id: Optional[int] = None,
    ) -> int:
        req = await db_session.get(TutoringRequest, request_id, populate_existing=True)
        s = TutoringSession(
            request_id=req.id,
            tutor_id=tutor_id or req.requested_tutor_id,
            student_id=req.student_id,
            course_id=req.course_id,
            start_time=start_time,
            end_time=start_time + timedelta(hours=hours),
            status=status,
        )
        db_session.add(s)
        await db_session.commit()
        return s.id

    return _make
