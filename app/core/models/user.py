from sqlalchemy import Column, Integer, String

from app.core.enums import UserRole
from app.core.models._columns import enum_column
from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    """Institutional user. Owned by the identity provider; read-only here."""

    __tablename__ = "users"

    # Institutional numeric id, assigned externally
    id = Column(Integer, primary_key=True, autoincrement=False)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    role = enum_column(UserRole, default=UserRole.STUDENT)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
