"""Per-record locks for serialising mutations of the same memory."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class RecordLocks:
    """Hands out one ``asyncio.Lock`` per record id.

    Locks are created on demand and dropped once no task holds or waits on
    them, so the registry only grows with the number of records in flight.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, record_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(record_id, asyncio.Lock())
        self._waiters[record_id] = self._waiters.get(record_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[record_id] -= 1
            if self._waiters[record_id] == 0:
                del self._waiters[record_id]
                del self._locks[record_id]

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, record_id: str) -> bool:
        lock = self._locks.get(record_id)
        return lock is not None and lock.locked()
