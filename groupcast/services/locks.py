from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .errors import GroupBusy


log = logging.getLogger("groupcast")


class GroupLocks:
    """One lock per group coordinator; a held lock rejects instead of queueing."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_busy(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def busy_keys(self) -> list[str]:
        return sorted(key for key, lock in self._locks.items() if lock.locked())

    @asynccontextmanager
    async def hold(self, key: str, action: Optional[str] = None) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        # An unlocked asyncio.Lock is acquired without suspending, so check and acquire cannot interleave.
        if lock.locked():
            raise GroupBusy(f"group {key} is busy with another command", action=action)
        await lock.acquire()
        log.debug("Group %s locked", key)
        try:
            yield
        finally:
            lock.release()
            log.debug("Group %s released", key)
