"""Student requests for tutoring in a course; status follows the lifecycle table in
app.api.v1.tutoring_requests.transitions."""

from sqlalchemy import Column, ForeignKey, Integer, Text

from app.core.enums import RequestStatus
from app.core.models._columns import enum_column
from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class TutoringRequest(Base):
    __tablename__ = "tutoring_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    # Authoritative only while status is pending_tutor or approved
    requested_tutor_id = Column(
        Integer, ForeignKey("tutors.user_id", ondelete="SET NULL"), nullable=True, index=True
    )
    status = enum_column(RequestStatus, default=RequestStatus.PENDING, index=True)
    decline_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
