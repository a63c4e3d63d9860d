from typing import List

from pydantic import BaseModel, Field

from app.core.enums import UserRole


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated caller for relationship checks.
    Tutor status is not a role: it is derived from the directory (Tutor row) where needed.
    """

    id: int = Field(..., gt=0)
    roles: List[UserRole] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN in self.roles
