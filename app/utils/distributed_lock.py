"""
Distributed locking utility for serializing work on the same resource.

Two backends are provided:

- LocalLockBackend: keyed asyncio locks, valid inside one process (default)
- RedisLockBackend: ``SET NX PX`` with an owner token and compare-and-delete
  release, for deployments with several workers

A lock may be handed over to another task (``detach``): the new owner is
then responsible for releasing it.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional, Protocol

from app.utils.error_handler import LockAcquisitionError

logger = logging.getLogger(__name__)

__all__ = [
    "DistributedLock",
    "LocalLockBackend",
    "LockAcquisitionError",
    "LockBackend",
    "RedisLockBackend",
    "configure_lock_backend",
    "get_lock_backend",
    "reset_lock_backend",
]


class LockBackend(Protocol):
    """Storage for lock ownership."""

    async def acquire(self, key: str, token: str, ttl_seconds: float, wait_timeout: float) -> bool: ...

    async def release(self, key: str, token: str) -> None: ...

    async def is_locked(self, key: str) -> bool: ...


class LocalLockBackend:
    """
    In-process lock backend built on one ``asyncio.Lock`` per key.

    Entries are reference counted and dropped once no task holds or waits
    for them. The TTL is ignored: ownership ends with an explicit release.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}
        self._owners: Dict[str, str] = {}

    def _enter(self, key: str) -> asyncio.Lock:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _leave(self, key: str) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    async def acquire(self, key: str, token: str, ttl_seconds: float, wait_timeout: float) -> bool:
        lock = self._enter(key)

        if wait_timeout <= 0:
            # A woken waiter has not marked the lock as taken yet
            if lock.locked() or self._users[key] > 1:
                self._leave(key)
                return False
            await lock.acquire()
        else:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=wait_timeout)
            except asyncio.TimeoutError:
                self._leave(key)
                return False
            except asyncio.CancelledError:
                self._leave(key)
                raise

        self._owners[key] = token
        return True

    async def release(self, key: str, token: str) -> None:
        lock = self._locks.get(key)
        if lock is None or not lock.locked() or self._owners.get(key) != token:
            logger.warning(f"Ignoring release of lock '{key}' not held by token {token[:8]}")
            return
        self._owners.pop(key, None)
        lock.release()
        self._leave(key)

    async def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def held_keys(self) -> list:
        return sorted(key for key, lock in self._locks.items() if lock.locked())


_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLockBackend:
    """
    Redis lock backend.

    The key expires after the TTL so a crashed owner cannot block the
    resource forever. Waiting polls with exponential backoff.
    """

    def __init__(self, redis_client: Any, prefix: str = "lock:", retry_delay: float = 0.05, max_retry_delay: float = 1.0):
        self.redis = redis_client
        self.prefix = prefix
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay

    async def acquire(self, key: str, token: str, ttl_seconds: float, wait_timeout: float) -> bool:
        redis_key = f"{self.prefix}{key}"
        deadline = time.monotonic() + max(wait_timeout, 0)
        delay = self.retry_delay

        while True:
            if await self.redis.set(redis_key, token, nx=True, px=int(ttl_seconds * 1000)):
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_retry_delay)

    async def release(self, key: str, token: str) -> None:
        released = await self.redis.eval(_RELEASE_SCRIPT, 1, f"{self.prefix}{key}", token)
        if not released:
            logger.warning(f"Lock '{key}' expired or taken over before release")

    async def is_locked(self, key: str) -> bool:
        return bool(await self.redis.exists(f"{self.prefix}{key}"))


class DistributedLock:
    """
    Lock on a named resource.

    Example:
        ```python
        async with DistributedLock("customer:C1", wait_timeout=5) as lock:
            ...  # only one holder at a time
        ```

    Raises ``LockAcquisitionError`` when the lock cannot be obtained within
    ``wait_timeout`` seconds (``0`` means try once without waiting).
    """

    def __init__(
        self,
        lock_key: str,
        timeout_seconds: float = 30,
        wait_timeout: float = 10.0,
        backend: Optional[LockBackend] = None,
    ):
        """
        Initialize the distributed lock.

        Args:
            lock_key: Unique key for the lock
            timeout_seconds: Lock TTL in seconds (Redis backend)
            wait_timeout: Maximum seconds to wait for the lock
            backend: Lock backend, the global one when omitted
        """
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        self.wait_timeout = wait_timeout
        self.backend = backend or get_lock_backend()
        self.token = uuid.uuid4().hex
        self.acquired = False
        self.start_time: Optional[float] = None
        self._detached = False

    async def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            bool: True if the lock was acquired
        """
        if self.acquired:
            return True
        self.acquired = await self.backend.acquire(self.lock_key, self.token, self.timeout_seconds, self.wait_timeout)
        if self.acquired:
            self.start_time = time.monotonic()
            logger.debug(f"🔒 Acquired lock '{self.lock_key}'")
        else:
            logger.debug(f"⏳ Lock '{self.lock_key}' busy")
        return self.acquired

    async def release(self) -> None:
        """Release the lock if held."""
        if not self.acquired:
            return
        self.acquired = False
        self._detached = False
        await self.backend.release(self.lock_key, self.token)
        duration = time.monotonic() - (self.start_time or time.monotonic())
        logger.debug(f"🔓 Released lock '{self.lock_key}' (held for {duration:.2f}s)")

    def detach(self) -> "DistributedLock":
        """
        Hand ownership to another task: leaving the ``async with`` block no
        longer releases the lock, the new owner must call ``release()``.
        """
        self._detached = True
        return self

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockAcquisitionError(
                message=f"Could not acquire lock '{self.lock_key}' within {self.wait_timeout}s",
                lock_key=self.lock_key,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if not self._detached:
            await self.release()
        return False


# Global lock backend instance
_lock_backend: Optional[LockBackend] = None


def get_lock_backend() -> LockBackend:
    """Get or create the global lock backend (in-process by default)."""
    global _lock_backend

    if _lock_backend is None:
        _lock_backend = LocalLockBackend()

    return _lock_backend


def configure_lock_backend(backend: LockBackend) -> None:
    """Install the global lock backend (called at startup)."""
    global _lock_backend
    _lock_backend = backend
    logger.info(f"🔧 Lock backend configured: {type(backend).__name__}")


def reset_lock_backend() -> None:
    """Drop the global lock backend."""
    global _lock_backend
    _lock_backend = None
