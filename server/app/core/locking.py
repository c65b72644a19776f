"""In-process keyed locks used as per-departure and per-booking exclusion points."""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    """Raised when a keyed lock could not be acquired within its timeout."""

    def __init__(self, key: Hashable, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for lock on {key}")
        self.key = key
        self.timeout = timeout


class KeyedLockRegistry:
    """
    Hands out one ``asyncio.Lock`` per key.

    Locks live only while someone holds a reference to them, so the registry
    does not grow with every departure or booking ever touched.
    """

    def __init__(self, name: str):
        self.name = name
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable, timeout: float) -> AsyncIterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeout: If the lock is not acquired within ``timeout`` seconds
        """
        lock = self._lock_for(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Lock acquisition timed out",
                extra={"registry": self.name, "key": str(key), "timeout_seconds": timeout}
            )
            raise LockTimeout(key, timeout) from e
        try:
            yield
        finally:
            lock.release()


# Seat counters: reserve and release synchronize here
departure_locks = KeyedLockRegistry("departure")

# Payment appends for one booking serialize here
booking_locks = KeyedLockRegistry("booking")
