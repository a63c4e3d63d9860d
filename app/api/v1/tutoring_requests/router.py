from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.enums import RequestStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    AssignTutor,
    AuditEntryResponse,
    DenyRequest,
    TutoringRequestCreate,
    TutoringRequestResponse,
    TutoringRequestUpdate,
    TutorResponse,
)

router = APIRouter(prefix="/api/v1/tutoring-requests", tags=["tutoring-requests"])


@router.get("", response_model=List[TutoringRequestResponse])
async def list_tutoring_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    student_id: Optional[int] = Query(None, gt=0),
    requested_tutor_id: Optional[int] = Query(None, gt=0),
    course_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TutoringRequestResponse]:
    """List requests. Admins see all; others see requests they own or are currently assigned to."""
    return await service.list_tutoring_requests(
        db,
        current_user,
        status=status_filter,
        student_id=student_id,
        requested_tutor_id=requested_tutor_id,
        course_id=course_id,
    )


@router.get("/{request_id}", response_model=TutoringRequestResponse)
async def get_tutoring_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TutoringRequestResponse:
    try:
        return await service.get_request_for(db, request_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{request_id}/history", response_model=List[AuditEntryResponse])
async def get_tutoring_request_history(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AuditEntryResponse]:
    """Audit trail of every transition applied to the request."""
    try:
        return await service.list_request_history(db, request_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("", response_model=TutoringRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_tutoring_request(
    payload: TutoringRequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TutoringRequestResponse:
    """Create a request in status pending. A preferred tutor may be named but is not assigned."""
    try:
        return await service.create_tutoring_request(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{request_id}", response_model=TutoringRequestResponse)
async def update_tutoring_request(
    request_id: int,
    payload: TutoringRequestUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TutoringRequestResponse:
    try:
        return await service.update_tutoring_request(db, request_id, payload, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{request_id}")
async def delete_tutoring_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        await service.delete_tutoring_request(db, request_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {"message": "Tutoring request deleted"}


@router.put("/{request_id}/assign", response_model=TutoringRequestResponse)
async def assign_tutor(
    request_id: int,
    payload: AssignTutor,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> TutoringRequestResponse:
    """Propose a tutor (pending/pending_tutor -> pending_tutor). Admin only."""
    try:
        return await service.assign_tutor(db, request_id, payload.requested_tutor_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{request_id}/deny", response_model=TutoringRequestResponse)
async def deny_request(
    request_id: int,
    payload: Optional[DenyRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> TutoringRequestResponse:
    """Deny an open request with an optional reason. Admin only."""
    reason = payload.decline_reason if payload else None
    try:
        return await service.deny_request(db, request_id, current_user, reason=reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{request_id}/reopen", response_model=TutoringRequestResponse)
async def reopen_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> TutoringRequestResponse:
    """Return a denied request to the pending queue. Admin only."""
    try:
        return await service.reopen_request(db, request_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{request_id}/tutor-response", response_model=TutoringRequestResponse)
async def tutor_response(
    request_id: int,
    payload: TutorResponse,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TutoringRequestResponse:
    """Assigned tutor accepts or declines. Declining returns the request to the admin queue."""
    try:
        return await service.tutor_respond(db, request_id, payload.accepted, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
