from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.core.enums import RequestAction, RequestStatus


# ----- Create / Update -----
class TutoringRequestCreate(BaseModel):
    """Create a tutoring request. student_id defaults to the caller; only admins may set another student."""

    student_id: Optional[int] = Field(None, gt=0)
    course_id: int = Field(..., gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    requested_tutor_id: Optional[int] = Field(None, gt=0, description="Preferred tutor; not an assignment")


class TutoringRequestUpdate(BaseModel):
    """Partial update. A status change is applied through the lifecycle table, never written directly."""

    course_id: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    requested_tutor_id: Optional[int] = Field(None, gt=0)
    status: Optional[RequestStatus] = None
    decline_reason: Optional[str] = Field(None, min_length=1, max_length=2000)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "TutoringRequestUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field is required")
        return self


# ----- Transitions -----
class AssignTutor(BaseModel):
    requested_tutor_id: int = Field(..., gt=0)


class DenyRequest(BaseModel):
    decline_reason: Optional[str] = Field(None, min_length=1, max_length=2000)


class TutorResponse(BaseModel):
    accepted: bool


# ----- Responses -----
class TutoringRequestResponse(BaseModel):
    id: int
    student_id: int
    course_id: int
    description: Optional[str] = None
    requested_tutor_id: Optional[int] = None
    status: RequestStatus
    decline_reason: Optional[str] = None
    allowed_actions: List[RequestAction] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    performed_by: Optional[int] = None
    remarks: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
