"""Concrete tutoring bookings. tutor/student/course are copied from the request at
creation and never change; only the times (reschedule) and the completion fields mutate."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Text

from app.core.enums import SessionStatus
from app.core.models._columns import enum_column
from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class TutoringSession(Base):
    __tablename__ = "tutoring_sessions"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_session_start_before_end"),
        # Quota ledger scans a tutor's sessions by start_time
        Index("ix_tutoring_sessions_tutor_start", "tutor_id", "start_time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(
        Integer, ForeignKey("tutoring_requests.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    tutor_id = Column(Integer, ForeignKey("tutors.user_id", ondelete="RESTRICT"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = enum_column(SessionStatus, default=SessionStatus.SCHEDULED)
    attended = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600
