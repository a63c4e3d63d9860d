from sqlalchemy import Boolean, Column, Integer, String

from app.db.session import Base


class Course(Base):
    """Course catalogue entry. Managed by the directory; read-only here."""

    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    department = Column(String(120), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
