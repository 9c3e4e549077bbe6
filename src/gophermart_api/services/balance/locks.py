"""Per-user in-process locks that serialize withdrawals."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class UserLockRegistry:
    """Hands out one ``asyncio.Lock`` per user id.

    Owned by the application (one instance per process) and passed to every
    ``BalanceService``; tests build their own instances. An entry lives only
    while some caller holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[user_id] - 1
            if remaining:
                self._users[user_id] = remaining
            else:
                del self._users[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["UserLockRegistry"]
