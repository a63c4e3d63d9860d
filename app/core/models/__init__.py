from app.core.models.user import User
from app.core.models.course import Course
from app.core.models.tutor import Tutor
from app.core.models.tutoring_request import TutoringRequest
from app.core.models.tutoring_session import TutoringSession
from app.core.models.tutoring_audit_log import (
    ENTITY_REQUEST,
    ENTITY_SESSION,
    TutoringAuditLog,
)

__all__ = [
    "User",
    "Course",
    "Tutor",
    "TutoringRequest",
    "TutoringSession",
    "TutoringAuditLog",
    "ENTITY_REQUEST",
    "ENTITY_SESSION",
]
