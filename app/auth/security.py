from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from jose import jwt

from app.core.config import settings
from app.core.enums import UserRole


def parse_roles(raw: object) -> List[UserRole]:
    """Normalise a token's role claim into known roles; unknown names are dropped."""
    if not isinstance(raw, (list, tuple)):
        return []
    roles: List[UserRole] = []
    for name in raw:
        if not isinstance(name, str):
            continue
        try:
            role = UserRole(name.strip().lower())
        except ValueError:
            continue
        if role not in roles:
            roles.append(role)
    return roles


def create_access_token(
    *, user_id: int, roles: Iterable[str], expires_minutes: Optional[int] = None
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode = {
        "sub": str(user_id),
        "roles": [r.value if isinstance(r, UserRole) else str(r) for r in roles],
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
