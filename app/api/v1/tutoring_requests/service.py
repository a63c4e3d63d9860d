"""Tutoring request lifecycle: create, assign, deny, tutor response, reopen, with audit."""

from typing import List, Optional

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core import directory
from app.core.enums import TUTOR_BOUND_REQUEST_STATUSES, RequestAction, RequestStatus
from app.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.models import ENTITY_REQUEST, TutoringAuditLog, TutoringRequest, TutoringSession
from app.db.locking import serialized

from .schemas import (
    AuditEntryResponse,
    TutoringRequestCreate,
    TutoringRequestResponse,
    TutoringRequestUpdate,
)
from .transitions import allowed_actions, next_status

logger = structlog.get_logger(__name__)


def _request_to_response(r: TutoringRequest) -> TutoringRequestResponse:
    return TutoringRequestResponse(
        id=r.id,
        student_id=r.student_id,
        course_id=r.course_id,
        description=r.description,
        requested_tutor_id=r.requested_tutor_id,
        status=r.status,
        decline_reason=r.decline_reason,
        allowed_actions=list(allowed_actions(r.status)),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _is_assigned_tutor(r: TutoringRequest, user_id: int) -> bool:
    """requested_tutor_id only binds a tutor while the request is pending_tutor or approved."""
    return r.status in TUTOR_BOUND_REQUEST_STATUSES and r.requested_tutor_id == user_id


def can_view(r: TutoringRequest, actor: CurrentUser) -> bool:
    return actor.is_admin or r.student_id == actor.id or _is_assigned_tutor(r, actor.id)


def _log_request_audit(
    db: AsyncSession,
    request_id: int,
    action: str,
    performed_by: int,
    from_status: Optional[RequestStatus] = None,
    to_status: Optional[RequestStatus] = None,
    remarks: Optional[str] = None,
) -> None:
    db.add(
        TutoringAuditLog(
            entity_type=ENTITY_REQUEST,
            entity_id=request_id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
            performed_by=performed_by,
            remarks=remarks,
        )
    )


async def get_tutoring_request(
    db: AsyncSession, request_id: int, for_update: bool = False
) -> Optional[TutoringRequest]:
    """Load a request with its committed state. Inside `serialized` this is the guard read
    and also takes the row lock."""
    q = select(TutoringRequest).where(TutoringRequest.id == request_id)
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def _require_request(db: AsyncSession, request_id: int, for_update: bool = True) -> TutoringRequest:
    req = await get_tutoring_request(db, request_id, for_update=for_update)
    if not req:
        raise NotFoundError("Tutoring request not found")
    return req


def _require_admin(actor: CurrentUser, message: str) -> None:
    if not actor.is_admin:
        raise ForbiddenError(message)


# ----- Transition steps (mutate only; caller holds the lock and commits) -----


async def _assign(db: AsyncSession, req: TutoringRequest, tutor_id: int, actor: CurrentUser) -> None:
    tutor = await directory.get_tutor(db, tutor_id)
    if not tutor:
        raise NotFoundError("Requested tutor not found")
    target = next_status(RequestAction.ASSIGN, req.status)
    if not tutor.active:
        raise ValidationError("Requested tutor is not active")

    previous_status, previous_tutor = req.status, req.requested_tutor_id
    req.requested_tutor_id = tutor_id
    req.status = target
    _log_request_audit(
        db, req.id, RequestAction.ASSIGN.value, actor.id, previous_status, target,
        remarks=f"tutor {tutor_id}",
    )
    logger.info(
        "request_assigned",
        request_id=req.id,
        tutor_id=tutor_id,
        previous_tutor_id=previous_tutor if previous_status == RequestStatus.PENDING_TUTOR else None,
        performed_by=actor.id,
    )


def _deny(db: AsyncSession, req: TutoringRequest, reason: Optional[str], actor: CurrentUser) -> None:
    target = next_status(RequestAction.DENY, req.status)
    previous_status = req.status
    req.status = target
    req.decline_reason = reason
    _log_request_audit(db, req.id, RequestAction.DENY.value, actor.id, previous_status, target, remarks=reason)
    logger.info("request_denied", request_id=req.id, performed_by=actor.id)


def _reopen(db: AsyncSession, req: TutoringRequest, actor: CurrentUser) -> None:
    target = next_status(RequestAction.REOPEN, req.status)
    previous_status = req.status
    req.status = target
    req.decline_reason = None
    _log_request_audit(db, req.id, RequestAction.REOPEN.value, actor.id, previous_status, target)
    logger.info("request_reopened", request_id=req.id, performed_by=actor.id)


async def _commit(db: AsyncSession, req: TutoringRequest) -> TutoringRequestResponse:
    await db.commit()
    await db.refresh(req)
    return _request_to_response(req)


# ----- Public operations -----


async def create_tutoring_request(
    db: AsyncSession,
    actor: CurrentUser,
    payload: TutoringRequestCreate,
) -> TutoringRequestResponse:
    """Student creates a request for themself; admins may create one on behalf of any user."""
    student_id = payload.student_id or actor.id
    if student_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Students can only create requests for themselves")
    if not await directory.user_exists(db, student_id):
        raise NotFoundError("User not found")
    if not await directory.course_exists(db, payload.course_id):
        raise NotFoundError("Course not found")
    if payload.requested_tutor_id is not None:
        if not await directory.get_tutor(db, payload.requested_tutor_id):
            raise NotFoundError("Requested tutor not found")

    req = TutoringRequest(
        student_id=student_id,
        course_id=payload.course_id,
        description=payload.description,
        requested_tutor_id=payload.requested_tutor_id,
        status=RequestStatus.PENDING,
    )
    db.add(req)
    await db.flush()
    _log_request_audit(db, req.id, "create", actor.id, None, RequestStatus.PENDING)
    await db.commit()
    await db.refresh(req)
    logger.info("request_created", request_id=req.id, student_id=student_id, course_id=req.course_id)
    return _request_to_response(req)


async def get_request_for(db: AsyncSession, request_id: int, actor: CurrentUser) -> TutoringRequestResponse:
    req = await _require_request(db, request_id, for_update=False)
    if not can_view(req, actor):
        raise ForbiddenError("You do not have access to this request")
    return _request_to_response(req)


async def list_tutoring_requests(
    db: AsyncSession,
    actor: CurrentUser,
    status: Optional[RequestStatus] = None,
    student_id: Optional[int] = None,
    requested_tutor_id: Optional[int] = None,
    course_id: Optional[int] = None,
) -> List[TutoringRequestResponse]:
    """Filtered listing, newest first. Non-admins only ever see their own requests
    or requests currently assigned to them."""
    q = select(TutoringRequest)
    if status is not None:
        q = q.where(TutoringRequest.status == status)
    if student_id is not None:
        q = q.where(TutoringRequest.student_id == student_id)
    if requested_tutor_id is not None:
        q = q.where(TutoringRequest.requested_tutor_id == requested_tutor_id)
    if course_id is not None:
        q = q.where(TutoringRequest.course_id == course_id)
    if not actor.is_admin:
        q = q.where(
            or_(
                TutoringRequest.student_id == actor.id,
                and_(
                    TutoringRequest.requested_tutor_id == actor.id,
                    TutoringRequest.status.in_(list(TUTOR_BOUND_REQUEST_STATUSES)),
                ),
            )
        )
    q = q.order_by(TutoringRequest.created_at.desc(), TutoringRequest.id.desc())
    result = await db.execute(q)
    rows = result.scalars().all()
    return [_request_to_response(r) for r in rows]


async def assign_tutor(
    db: AsyncSession,
    request_id: int,
    tutor_id: int,
    actor: CurrentUser,
) -> TutoringRequestResponse:
    """Admin proposes a tutor. Allowed from pending and pending_tutor (reassignment)."""
    _require_admin(actor, "Only admins can assign a tutor")
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)
        await _assign(db, req, tutor_id, actor)
        return await _commit(db, req)


async def deny_request(
    db: AsyncSession,
    request_id: int,
    actor: CurrentUser,
    reason: Optional[str] = None,
) -> TutoringRequestResponse:
    """Admin denies an open request. requested_tutor_id is kept for information."""
    _require_admin(actor, "Only admins can deny a request")
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)
        _deny(db, req, reason, actor)
        return await _commit(db, req)


async def reopen_request(
    db: AsyncSession,
    request_id: int,
    actor: CurrentUser,
) -> TutoringRequestResponse:
    """Administrative recovery: denied -> pending."""
    _require_admin(actor, "Only admins can reopen a request")
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)
        _reopen(db, req, actor)
        return await _commit(db, req)


async def tutor_respond(
    db: AsyncSession,
    request_id: int,
    accept: bool,
    actor: CurrentUser,
) -> TutoringRequestResponse:
    """Assigned tutor accepts (-> approved) or declines (-> pending, tutor cleared)."""
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)
        if req.status != RequestStatus.PENDING_TUTOR or req.requested_tutor_id != actor.id:
            raise ForbiddenError("This request is not awaiting your response or is not assigned to you")

        action = RequestAction.ACCEPT if accept else RequestAction.DECLINE
        previous_status = req.status
        req.status = next_status(action, req.status)
        if not accept:
            # Back to the admin queue
            req.requested_tutor_id = None
        _log_request_audit(db, req.id, action.value, actor.id, previous_status, req.status)
        logger.info("request_tutor_response", request_id=req.id, tutor_id=actor.id, accepted=accept)
        return await _commit(db, req)


async def update_tutoring_request(
    db: AsyncSession,
    request_id: int,
    payload: TutoringRequestUpdate,
    actor: CurrentUser,
) -> TutoringRequestResponse:
    """PATCH a request.

    Admins may edit course, description and decline reason, and may move status;
    a status change goes through the lifecycle table (pending_tutor via assign,
    denied via deny, pending via reopen). approved is reachable only by the
    assigned tutor. The owning student may edit course and description while
    the request is still pending.
    """
    fields = payload.model_fields_set
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)

        if not actor.is_admin:
            if req.student_id != actor.id:
                raise ForbiddenError("You do not have access to this request")
            if fields - {"course_id", "description"}:
                raise ForbiddenError("Only admins can change assignment or status")
            if req.status != RequestStatus.PENDING:
                raise InvalidTransitionError("Request can only be edited while pending")

        target = payload.status if "status" in fields else None
        if "status" in fields and target is None:
            raise ValidationError("status cannot be null")
        if "course_id" in fields and payload.course_id is None:
            raise ValidationError("course_id cannot be null")
        if "requested_tutor_id" in fields:
            if payload.requested_tutor_id is None:
                raise ValidationError("An assigned tutor is only cleared by the tutor declining")
            if target is None:
                target = RequestStatus.PENDING_TUTOR
            elif target != RequestStatus.PENDING_TUTOR:
                raise ValidationError("requested_tutor_id can only be set together with an assignment")
        if target == RequestStatus.PENDING_TUTOR and payload.requested_tutor_id is None:
            raise ValidationError("requested_tutor_id is required to assign a tutor")
        if target == RequestStatus.APPROVED:
            raise InvalidTransitionError("Only the assigned tutor can approve a request")
        if "decline_reason" in fields and target != RequestStatus.DENIED and (
            target is not None or req.status != RequestStatus.DENIED
        ):
            raise ValidationError("decline_reason can only be set on a denied request")

        if "course_id" in fields:
            if req.status not in (RequestStatus.PENDING, RequestStatus.PENDING_TUTOR):
                raise ValidationError("Course can only be changed while the request is open")
            if not await directory.course_exists(db, payload.course_id):
                raise NotFoundError("Course not found")

        if target == RequestStatus.PENDING_TUTOR:
            await _assign(db, req, payload.requested_tutor_id, actor)
        elif target == RequestStatus.DENIED:
            _deny(db, req, payload.decline_reason, actor)
        elif target == RequestStatus.PENDING:
            _reopen(db, req, actor)
        elif "decline_reason" in fields:
            req.decline_reason = payload.decline_reason

        if "course_id" in fields:
            req.course_id = payload.course_id
        if "description" in fields:
            req.description = payload.description

        return await _commit(db, req)


async def delete_tutoring_request(db: AsyncSession, request_id: int, actor: CurrentUser) -> None:
    """Admin or the owning student. A request referenced by a session is never deleted."""
    async with serialized(db, "request", request_id):
        req = await _require_request(db, request_id)
        if not actor.is_admin and req.student_id != actor.id:
            raise ForbiddenError("You do not have access to this request")
        has_sessions = (
            await db.execute(
                select(TutoringSession.id).where(TutoringSession.request_id == request_id).limit(1)
            )
        ).scalar_one_or_none()
        if has_sessions is not None:
            raise InvalidStateError("Cannot delete a request that has sessions")
        await db.delete(req)
        _log_request_audit(db, request_id, "delete", actor.id, req.status, None)
        try:
            await db.commit()
        except IntegrityError:
            raise InvalidStateError("Cannot delete a request that has sessions")
    logger.info("request_deleted", request_id=request_id, performed_by=actor.id)


async def list_request_history(
    db: AsyncSession,
    request_id: int,
    actor: CurrentUser,
) -> List[AuditEntryResponse]:
    req = await _require_request(db, request_id, for_update=False)
    if not can_view(req, actor):
        raise ForbiddenError("You do not have access to this request")
    result = await db.execute(
        select(TutoringAuditLog)
        .where(
            TutoringAuditLog.entity_type == ENTITY_REQUEST,
            TutoringAuditLog.entity_id == request_id,
        )
        .order_by(TutoringAuditLog.created_at, TutoringAuditLog.id)
    )
    return [AuditEntryResponse.model_validate(e) for e in result.scalars().all()]
