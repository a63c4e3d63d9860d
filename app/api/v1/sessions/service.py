"""Session scheduling: create (quota-checked), reschedule, complete, listing."""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.tutoring_requests.service import get_tutoring_request
from app.auth.schemas import CurrentUser
from app.core import directory
from app.core.config import settings
from app.core.enums import (
    TUTOR_BOUND_REQUEST_STATUSES,
    RequestStatus,
    SessionAction,
    SessionStatus,
)
from app.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.models import ENTITY_SESSION, TutoringAuditLog, TutoringSession
from app.db.locking import serialized
from app.db.types import as_utc, utcnow

from . import quota
from .schemas import QuotaUsageResponse, SessionComplete, SessionCreate, SessionReschedule, SessionResponse
from .transitions import next_session_status

logger = structlog.get_logger(__name__)


def _session_to_response(s: TutoringSession) -> SessionResponse:
    return SessionResponse(
        id=s.id,
        request_id=s.request_id,
        tutor_id=s.tutor_id,
        student_id=s.student_id,
        course_id=s.course_id,
        start_time=s.start_time,
        end_time=s.end_time,
        status=s.status,
        attended=s.attended,
        notes=s.notes,
        duration_hours=s.duration_hours,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _log_session_audit(
    db: AsyncSession,
    session_id: int,
    action: str,
    performed_by: int,
    from_status: Optional[SessionStatus],
    to_status: SessionStatus,
    remarks: Optional[str] = None,
) -> None:
    db.add(
        TutoringAuditLog(
            entity_type=ENTITY_SESSION,
            entity_id=session_id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            performed_by=performed_by,
            remarks=remarks,
        )
    )


def _validated_times(start_time: datetime, end_time: datetime) -> Tuple[datetime, datetime]:
    start, end = as_utc(start_time), as_utc(end_time)
    if end <= start:
        raise ValidationError("End time must be after start time")
    return start, end


async def _get_session(db: AsyncSession, session_id: int) -> Optional[TutoringSession]:
    result = await db.execute(
        select(TutoringSession)
        .where(TutoringSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _require_own_session(db: AsyncSession, session_id: int, actor: CurrentUser, verb: str) -> TutoringSession:
    s = await _get_session(db, session_id)
    if not s:
        raise NotFoundError("Session not found")
    if s.tutor_id != actor.id:
        raise ForbiddenError(f"Only tutor can {verb} session")
    return s


async def create_session(
    db: AsyncSession,
    actor: CurrentUser,
    payload: SessionCreate,
    as_of: Optional[datetime] = None,
) -> SessionResponse:
    """Assigned tutor books a session against a request.

    Locks are taken request first, then tutor. The request lock keeps assign, deny
    and tutor responses out until the booking commits; the tutor lock makes the
    weekly usage read, comparison and insert one unit.
    """
    as_of = as_of or utcnow()
    async with serialized(db, "request", payload.request_id):
        async with serialized(db, "tutor", actor.id):
            req = await get_tutoring_request(db, payload.request_id, for_update=True)
            if not req:
                raise NotFoundError("Request not found")
            if req.requested_tutor_id != actor.id or req.status not in TUTOR_BOUND_REQUEST_STATUSES:
                raise ForbiddenError("Only assigned tutor can create session")
            if settings.require_approved_request_for_scheduling and req.status != RequestStatus.APPROVED:
                raise InvalidTransitionError("Request must be approved before a session can be scheduled")

            start, end = _validated_times(payload.start_time, payload.end_time)
            new_hours = quota.duration_hours(start, end)

            tutor = await directory.get_tutor(db, actor.id)
            if not tutor:
                raise NotFoundError("Tutor not found")

            await quota.ensure_within_quota(db, tutor, new_hours, as_of)

            session = TutoringSession(
                request_id=req.id,
                tutor_id=actor.id,
                student_id=req.student_id,
                course_id=req.course_id,
                start_time=start,
                end_time=end,
                status=SessionStatus.SCHEDULED,
            )
            db.add(session)
            await db.flush()
            _log_session_audit(db, session.id, "create", actor.id, None, SessionStatus.SCHEDULED)
            await db.commit()
            await db.refresh(session)

    logger.info(
        "session_created",
        session_id=session.id,
        request_id=req.id,
        tutor_id=actor.id,
        duration_hours=new_hours,
    )
    return _session_to_response(session)


async def reschedule_session(
    db: AsyncSession,
    session_id: int,
    actor: CurrentUser,
    payload: SessionReschedule,
    as_of: Optional[datetime] = None,
) -> SessionResponse:
    """Move a scheduled session. Only times change.

    The weekly quota is re-checked only when REVALIDATE_QUOTA_ON_RESCHEDULE is set.
    """
    as_of = as_of or utcnow()
    # tutor_id is immutable, so the unlocked read is enough to pick the lock key
    await _require_own_session(db, session_id, actor, "reschedule")
    async with serialized(db, "tutor", actor.id):
        s = await _require_own_session(db, session_id, actor, "reschedule")
        next_session_status(SessionAction.RESCHEDULE, s.status)
        start, end = _validated_times(payload.start_time, payload.end_time)

        if settings.revalidate_quota_on_reschedule:
            tutor = await directory.get_tutor(db, actor.id)
            if not tutor:
                raise NotFoundError("Tutor not found")
            await quota.ensure_within_quota(
                db, tutor, quota.duration_hours(start, end), as_of, exclude_session_id=s.id
            )

        previous = f"{s.start_time.isoformat()} - {s.end_time.isoformat()}"
        s.start_time = start
        s.end_time = end
        _log_session_audit(
            db, s.id, SessionAction.RESCHEDULE.value, actor.id, s.status, s.status,
            remarks=f"was {previous}",
        )
        await db.commit()
        await db.refresh(s)

    logger.info("session_rescheduled", session_id=s.id, tutor_id=actor.id)
    return _session_to_response(s)


async def complete_session(
    db: AsyncSession,
    session_id: int,
    actor: CurrentUser,
    payload: SessionComplete,
) -> SessionResponse:
    """One-way: a second completion fails with InvalidStateError."""
    await _require_own_session(db, session_id, actor, "complete")
    async with serialized(db, "tutor", actor.id):
        s = await _require_own_session(db, session_id, actor, "complete")
        previous_status = s.status
        s.status = next_session_status(SessionAction.COMPLETE, s.status)
        s.attended = payload.attended
        s.notes = payload.notes
        _log_session_audit(
            db, s.id, SessionAction.COMPLETE.value, actor.id, previous_status, s.status,
            remarks=f"attended={payload.attended}",
        )
        await db.commit()
        await db.refresh(s)

    logger.info("session_completed", session_id=s.id, tutor_id=actor.id, attended=payload.attended)
    return _session_to_response(s)


async def get_session_for(db: AsyncSession, session_id: int, actor: CurrentUser) -> SessionResponse:
    s = await _get_session(db, session_id)
    if not s:
        raise NotFoundError("Session not found")
    if not actor.is_admin and actor.id not in (s.tutor_id, s.student_id):
        raise ForbiddenError("You do not have access to this session")
    return _session_to_response(s)


async def list_sessions(
    db: AsyncSession,
    actor: CurrentUser,
    tutor_id: Optional[int] = None,
    student_id: Optional[int] = None,
) -> List[SessionResponse]:
    """Admin sees all sessions; others only sessions where they are tutor or student."""
    q = select(TutoringSession)
    if tutor_id is not None:
        q = q.where(TutoringSession.tutor_id == tutor_id)
    if student_id is not None:
        q = q.where(TutoringSession.student_id == student_id)
    if not actor.is_admin:
        q = q.where(or_(TutoringSession.tutor_id == actor.id, TutoringSession.student_id == actor.id))
    q = q.order_by(TutoringSession.id.desc())
    result = await db.execute(q)
    return [_session_to_response(s) for s in result.scalars().all()]


async def get_quota_usage(
    db: AsyncSession,
    tutor_id: int,
    actor: CurrentUser,
    as_of: Optional[datetime] = None,
) -> QuotaUsageResponse:
    if not actor.is_admin and actor.id != tutor_id:
        raise ForbiddenError("You do not have access to this tutor's quota")
    tutor = await directory.get_tutor(db, tutor_id)
    if not tutor:
        raise NotFoundError("Tutor not found")
    usage = await quota.weekly_usage(db, tutor, as_of or utcnow())
    return QuotaUsageResponse(
        **usage.model_dump(),
        hours_remaining=max(usage.weekly_limit - usage.hours_used, 0.0),
    )
