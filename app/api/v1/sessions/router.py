from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import QuotaUsageResponse, SessionComplete, SessionCreate, SessionReschedule, SessionResponse

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


@router.get("", response_model=List[SessionResponse])
async def list_sessions(
    tutor_id: Optional[int] = Query(None, gt=0),
    student_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SessionResponse]:
    """Admin sees all sessions; students and tutors only sessions they are part of."""
    return await service.list_sessions(db, current_user, tutor_id=tutor_id, student_id=student_id)


@router.get("/quota/{tutor_id}", response_model=QuotaUsageResponse)
async def get_quota_usage(
    tutor_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> QuotaUsageResponse:
    """Hours booked in the current Sunday-Saturday week against the tutor's limit."""
    try:
        return await service.get_quota_usage(db, tutor_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    try:
        return await service.get_session_for(db, session_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    """Assigned tutor books a session; rejected when the weekly hour limit would be exceeded."""
    try:
        return await service.create_session(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{session_id}", response_model=SessionResponse)
async def reschedule_session(
    session_id: int,
    payload: SessionReschedule,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    """Move a scheduled session. Only the session's tutor."""
    try:
        return await service.reschedule_session(db, session_id, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{session_id}/complete", response_model=SessionResponse)
async def complete_session(
    session_id: int,
    payload: SessionComplete,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    """Mark a scheduled session completed with attendance and notes. Only the session's tutor."""
    try:
        return await service.complete_session(db, session_id, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
