"""
Per-key mutual exclusion for check-then-act sequences.

Every guarded read, decision and write of a lifecycle or scheduling operation runs
inside `serialized(...)`, together with its commit. Within one process an
asyncio.Lock per key serializes callers; on PostgreSQL a transaction-scoped
advisory lock extends the exclusion across worker processes.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

LockKey = Tuple[str, int]

# First argument of pg_advisory_xact_lock(int, int)
ADVISORY_NAMESPACES: Dict[str, int] = {
    "request": 1001,
    "tutor": 1002,
}


class KeyedLocks:
    """asyncio.Lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._locks: Dict[LockKey, asyncio.Lock] = {}
        self._users: Dict[LockKey, int] = {}

    @asynccontextmanager
    async def hold(self, key: LockKey) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_held(self, key: LockKey) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())


_local_locks = KeyedLocks()


async def _advisory_xact_lock(db: AsyncSession, namespace: str, key: int) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(:ns, :key)"),
        {"ns": ADVISORY_NAMESPACES[namespace], "key": key},
    )


@asynccontextmanager
async def serialized(db: AsyncSession, namespace: str, key: int) -> AsyncIterator[None]:
    """Run the enclosed unit of work exclusively for (namespace, key).

    The caller commits inside the block. Any exception rolls the session back
    before the lock is released, so a failed operation leaves no partial state.
    """
    if namespace not in ADVISORY_NAMESPACES:
        raise KeyError(f"Unknown lock namespace: {namespace}")
    async with _local_locks.hold((namespace, key)):
        try:
            await _advisory_xact_lock(db, namespace, key)
            yield
        except Exception:
            await db.rollback()
            raise
