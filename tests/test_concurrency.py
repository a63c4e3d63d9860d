import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.v1.sessions import quota
from app.api.v1.sessions import service as session_service
from app.api.v1.sessions.schemas import SessionCreate
from app.api.v1.tutoring_requests import service as request_service
from app.auth.schemas import CurrentUser
from app.core.enums import RequestStatus, UserRole
from app.core.exceptions import ForbiddenError, InvalidTransitionError, QuotaExceededError
from app.core.models import TutoringRequest, TutoringSession
from app.db.locking import KeyedLocks, serialized
from app.db.session import Base
from seed_data import ADMIN_ID, COURSE_ID, QUOTA_TUTOR_ID, STUDENT_ID, TUTOR_ID, seed_directory

UTC = timezone.utc
AS_OF = datetime(2026, 3, 4, 12, tzinfo=UTC)


@pytest.fixture()
async def session_factory(tmp_path):
    """File-backed database so every concurrent caller gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_directory(session)
    yield factory
    await engine.dispose()


async def _insert_request(factory, status: RequestStatus, tutor_id: int) -> int:
    async with factory() as session:
        req = TutoringRequest(
            student_id=STUDENT_ID, course_id=COURSE_ID, requested_tutor_id=tutor_id, status=status
        )
        session.add(req)
        await session.commit()
        return req.id


@pytest.mark.asyncio
async def test_concurrent_bookings_never_exceed_limit(session_factory) -> None:
    request_id = await _insert_request(session_factory, RequestStatus.APPROVED, QUOTA_TUTOR_ID)
    actor = CurrentUser(id=QUOTA_TUTOR_ID, roles=[])

    async def book(i: int):
        start = datetime(2026, 3, 2, 8, tzinfo=UTC) + timedelta(hours=4 * i)
        payload = SessionCreate(request_id=request_id, start_time=start, end_time=start + timedelta(hours=3))
        async with session_factory() as session:
            return await session_service.create_session(session, actor, payload, as_of=AS_OF)

    results = await asyncio.gather(*(book(i) for i in range(6)), return_exceptions=True)

    booked = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(booked) == 3
    assert len(rejected) == 3
    assert all(isinstance(r, QuotaExceededError) for r in rejected)

    async with session_factory() as session:
        count = (
            await session.execute(
                select(func.count()).select_from(TutoringSession).where(TutoringSession.tutor_id == QUOTA_TUTOR_ID)
            )
        ).scalar_one()
    assert count == 3


@pytest.mark.asyncio
async def test_deny_and_accept_race_has_one_winner(session_factory) -> None:
    request_id = await _insert_request(session_factory, RequestStatus.PENDING_TUTOR, TUTOR_ID)
    admin = CurrentUser(id=ADMIN_ID, roles=[UserRole.ADMIN])
    tutor = CurrentUser(id=TUTOR_ID, roles=[])

    async def deny():
        async with session_factory() as session:
            return await request_service.deny_request(session, request_id, admin, reason="Closed")

    async def accept():
        async with session_factory() as session:
            return await request_service.tutor_respond(session, request_id, True, tutor)

    results = await asyncio.gather(deny(), accept(), return_exceptions=True)
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], (ForbiddenError, InvalidTransitionError))

    async with session_factory() as session:
        stored = await session.get(TutoringRequest, request_id)
    assert stored.status == winners[0].status
    assert stored.status in (RequestStatus.DENIED, RequestStatus.APPROVED)


@pytest.mark.asyncio
async def test_keyed_locks_exclude_and_clean_up() -> None:
    locks = KeyedLocks()
    order = []

    async def worker(name: str) -> None:
        async with locks.hold(("tutor", 1)):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert not locks.is_held(("tutor", 1))
    assert locks._locks == {}


@pytest.mark.asyncio
async def test_serialized_rejects_unknown_namespace(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(KeyError):
            async with serialized(session, "course", 1):
                pass


@pytest.fixture()
def paused_quota_check(monkeypatch):
    """Hold create_session inside its quota check until `release` is set."""
    reached = asyncio.Event()
    release = asyncio.Event()
    original = quota.ensure_within_quota

    async def _paused(*args, **kwargs):
        reached.set()
        await release.wait()
        return await original(*args, **kwargs)

    monkeypatch.setattr(quota, "ensure_within_quota", _paused)
    return reached, release


async def _sessions_for(factory, request_id: int) -> int:
    async with factory() as session:
        return (
            await session.execute(
                select(func.count()).select_from(TutoringSession).where(TutoringSession.request_id == request_id)
            )
        ).scalar_one()


@pytest.mark.asyncio
async def test_deny_waits_for_booking_in_progress(session_factory, paused_quota_check) -> None:
    reached, release = paused_quota_check
    request_id = await _insert_request(session_factory, RequestStatus.APPROVED, QUOTA_TUTOR_ID)
    admin = CurrentUser(id=ADMIN_ID, roles=[UserRole.ADMIN])
    tutor = CurrentUser(id=QUOTA_TUTOR_ID, roles=[])
    finished = []

    async def book():
        start = datetime(2026, 3, 2, 8, tzinfo=UTC)
        payload = SessionCreate(request_id=request_id, start_time=start, end_time=start + timedelta(hours=1))
        async with session_factory() as session:
            result = await session_service.create_session(session, tutor, payload, as_of=AS_OF)
        finished.append("book")
        return result

    async def deny():
        async with session_factory() as session:
            result = await request_service.deny_request(session, request_id, admin, reason="Closed")
        finished.append("deny")
        return result

    booking = asyncio.create_task(book())
    await reached.wait()
    denial = asyncio.create_task(deny())
    await asyncio.sleep(0.05)
    assert not denial.done()

    release.set()
    await asyncio.gather(booking, denial)

    assert finished == ["book", "deny"]
    assert await _sessions_for(session_factory, request_id) == 1


@pytest.mark.asyncio
async def test_reassignment_waits_for_booking_in_progress(session_factory, paused_quota_check) -> None:
    reached, release = paused_quota_check
    request_id = await _insert_request(session_factory, RequestStatus.PENDING_TUTOR, QUOTA_TUTOR_ID)
    admin = CurrentUser(id=ADMIN_ID, roles=[UserRole.ADMIN])
    tutor = CurrentUser(id=QUOTA_TUTOR_ID, roles=[])

    async def book():
        start = datetime(2026, 3, 2, 8, tzinfo=UTC)
        payload = SessionCreate(request_id=request_id, start_time=start, end_time=start + timedelta(hours=1))
        async with session_factory() as session:
            return await session_service.create_session(session, tutor, payload, as_of=AS_OF)

    async def reassign():
        async with session_factory() as session:
            return await request_service.assign_tutor(session, request_id, TUTOR_ID, admin)

    booking = asyncio.create_task(book())
    await reached.wait()
    reassignment = asyncio.create_task(reassign())
    await asyncio.sleep(0.05)
    assert not reassignment.done()

    release.set()
    created, reassigned = await asyncio.gather(booking, reassignment)
    assert created.tutor_id == QUOTA_TUTOR_ID
    assert reassigned.requested_tutor_id == TUTOR_ID


@pytest.mark.asyncio
async def test_booking_after_deny_is_forbidden(session_factory) -> None:
    request_id = await _insert_request(session_factory, RequestStatus.APPROVED, QUOTA_TUTOR_ID)
    admin = CurrentUser(id=ADMIN_ID, roles=[UserRole.ADMIN])
    tutor = CurrentUser(id=QUOTA_TUTOR_ID, roles=[])

    async def deny():
        async with session_factory() as session:
            return await request_service.deny_request(session, request_id, admin)

    async def book():
        start = datetime(2026, 3, 2, 8, tzinfo=UTC)
        payload = SessionCreate(request_id=request_id, start_time=start, end_time=start + timedelta(hours=1))
        async with session_factory() as session:
            return await session_service.create_session(session, tutor, payload, as_of=AS_OF)

    # deny enters the request lock first, so the booking sees the denied request
    results = await asyncio.gather(deny(), book(), return_exceptions=True)
    assert not isinstance(results[0], Exception)
    assert isinstance(results[1], ForbiddenError)
    assert await _sessions_for(session_factory, request_id) == 0
