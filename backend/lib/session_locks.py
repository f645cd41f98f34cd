"""
Per-session locks: one revision turn per session at a time
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class SessionLocks:
    """
    asyncio.Lock per session id, held for the length of one turn.

    The engine upserts session state last-writer-wins, so two turns on the
    same session must not interleave between load and save. A lock is
    dropped once its last holder or waiter leaves, so the map only holds
    sessions with a turn in flight.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[asyncio.Lock]:
        # No await between lookup and count, so both are atomic on the event loop
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield lock
        finally:
            self._users[session_id] -= 1
            if self._users[session_id] == 0:
                del self._users[session_id]
                del self._locks[session_id]
