"""
Read-only directory lookups (users, courses, tutors).

Course and tutor management live outside this service; the lifecycle engine and
the scheduler only need existence and activity checks.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import Course, Tutor, User


async def get_tutor(db: AsyncSession, tutor_id: int) -> Optional[Tutor]:
    """Tutor profile for a user id, or None. Callers check `.active` themselves."""
    return await db.get(Tutor, tutor_id, populate_existing=True)


async def course_exists(db: AsyncSession, course_id: int) -> bool:
    result = await db.execute(select(Course.id).where(Course.id == course_id))
    return result.scalar_one_or_none() is not None


async def user_exists(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None
