from sqlalchemy import JSON, Boolean, CheckConstraint, Column, ForeignKey, Integer
from sqlalchemy.orm import relationship

from app.db.session import Base


class Tutor(Base):
    """Tutor profile; one per User. `active` is toggled by directory management."""

    __tablename__ = "tutors"
    __table_args__ = (CheckConstraint("hourly_limit > 0", name="ck_tutor_hourly_limit_positive"),)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    subjects = Column(JSON, nullable=False, default=list)
    # Weekly hour budget (Sunday-Saturday)
    hourly_limit = Column(Integer, nullable=False, default=10)
    active = Column(Boolean, nullable=False, default=True)

    user = relationship("User", foreign_keys=[user_id])
