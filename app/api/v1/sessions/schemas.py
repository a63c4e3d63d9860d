from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.core.enums import SessionStatus


class SessionCreate(BaseModel):
    """Times may carry an offset; naive values are read as UTC."""

    request_id: int = Field(..., gt=0)
    start_time: datetime
    end_time: datetime


class SessionReschedule(BaseModel):
    start_time: datetime
    end_time: datetime


class SessionComplete(BaseModel):
    attended: bool
    notes: Optional[str] = Field(None, max_length=4000)


class SessionResponse(BaseModel):
    id: int
    request_id: int
    tutor_id: int
    student_id: int
    course_id: int
    start_time: datetime
    end_time: datetime
    status: SessionStatus
    attended: Optional[bool] = None
    notes: Optional[str] = None
    duration_hours: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QuotaUsage(BaseModel):
    """A tutor's committed hours in the Sunday-Saturday week containing `as_of`."""

    tutor_id: int
    week_start: datetime
    week_end: datetime
    hours_used: float
    weekly_limit: int


class QuotaUsageResponse(QuotaUsage):
    hours_remaining: float
