"""Audit trail for request and session lifecycle: every transition is logged."""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow

ENTITY_REQUEST = "request"
ENTITY_SESSION = "session"


class TutoringAuditLog(Base):
    __tablename__ = "tutoring_audit_logs"
    __table_args__ = (Index("ix_tutoring_audit_logs_entity", "entity_type", "entity_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    performed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
