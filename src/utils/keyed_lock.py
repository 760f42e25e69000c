"""
Keyed Async Locks

One asyncio.Lock per key (lead id, assignee id). Used to serialize writes to
the same lead and slot search + booking on the same calendar while unrelated
keys proceed concurrently.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLock:
    """
    Lazily created per-key locks.

    Usage:
        locks = KeyedLock()
        async with locks.hold(lead.id):
            await lead_repo.update_status(lead.id, LeadStatus.QUALIFIED)
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            # Drop idle locks so long-running engines don't accumulate keys
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
