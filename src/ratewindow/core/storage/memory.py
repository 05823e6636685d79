"""
In-memory storage backend for testing and development.

This backend keeps counters in Python dictionaries while following the
same transaction contract as Redis:
- WATCH records a per-key version; EXEC aborts with WatchError if any
  watched key was written since.
- Commands queued after MULTI are applied together, with no await point
  in between, so they are atomic with respect to other tasks.
- TTLs are enforced lazily on access.

WARNING: Not suitable for production!
- No persistence (data lost on restart)
- No distribution (single process only)

Use RedisBackend for production deployments.
"""

import asyncio
import time
from typing import Any, Callable

from redis.exceptions import RedisError, WatchError

from ratewindow.core.storage.base import StorageBackend


class InMemoryTransaction:
    """
    Pipeline-like transaction over an InMemoryBackend.

    Each `watch` and `execute` yields to the event loop once, standing in
    for the network round trip, so concurrent tasks interleave the way
    independent Redis clients would.
    """

    def __init__(self, backend: "InMemoryBackend") -> None:
        self._backend = backend
        self._watched: dict[str, int] = {}
        self._queue: list[tuple[Any, ...]] = []
        self._explicit_transaction = False

    async def __aenter__(self) -> "InMemoryTransaction":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.reset()

    async def reset(self) -> None:
        self._watched.clear()
        self._queue.clear()
        self._explicit_transaction = False

    async def watch(self, *keys: str) -> bool:
        if self._explicit_transaction:
            raise RedisError("Cannot issue a WATCH after a MULTI")
        await asyncio.sleep(0)
        for key in keys:
            self._watched[key] = self._backend._version(key)
        return True

    def multi(self) -> None:
        if self._explicit_transaction:
            raise RedisError("Cannot issue nested calls to MULTI")
        if self._queue:
            raise RedisError("Commands without an initial WATCH have already been issued")
        self._explicit_transaction = True

    def setnx(self, key: str, value: int) -> "InMemoryTransaction":
        self._queue.append(("setnx", key, value))
        return self

    def expire(self, key: str, seconds: int, nx: bool = False) -> "InMemoryTransaction":
        self._queue.append(("expire", key, seconds, nx))
        return self

    def incr(self, key: str) -> "InMemoryTransaction":
        self._queue.append(("incr", key))
        return self

    def ttl(self, key: str) -> "InMemoryTransaction":
        self._queue.append(("ttl", key))
        return self

    async def execute(self) -> list[Any]:
        commands = list(self._queue)
        watched = dict(self._watched)
        await self.reset()

        await asyncio.sleep(0)

        # Everything below runs without yielding: this is the EXEC
        for key, version in watched.items():
            if self._backend._version(key) != version:
                raise WatchError("Watched variable changed.")

        return [self._backend._apply(*command) for command in commands]


class InMemoryBackend(StorageBackend):
    """
    In-memory implementation of StorageBackend.

    Example:
        >>> backend = InMemoryBackend()
        >>> strategy = await FixedWindowStrategy.create(backend)
        >>> decision = await strategy.get("user:123", Rate(10, 60))

    Thread Safety:
        Safe for concurrent asyncio tasks on one event loop. NOT safe
        across threads.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

        # Counters: key -> integer value
        self._data: dict[str, int] = {}

        # Expiration times: key -> unix timestamp when key expires
        self._expiry: dict[str, float] = {}

        # Write versions for WATCH: key -> monotonically increasing counter
        self._versions: dict[str, int] = {}

        # Reply returned by ping(); set to False to simulate a store that
        # answers with something other than PONG
        self.ping_reply = True

    async def ping(self) -> bool:
        return self.ping_reply

    def transaction(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)

    # =========================================================================
    # Internal state
    # =========================================================================

    def _is_expired(self, key: str) -> bool:
        if key in self._expiry:
            return self._clock() > self._expiry[key]
        return False

    def _cleanup_if_expired(self, key: str) -> None:
        if self._is_expired(key):
            self._data.pop(key, None)
            self._expiry.pop(key, None)
            self._touch(key)

    def _touch(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1

    def _version(self, key: str) -> int:
        self._cleanup_if_expired(key)
        return self._versions.get(key, 0)

    def _apply(self, command: str, key: str, *args: Any) -> Any:
        self._cleanup_if_expired(key)
        handler = getattr(self, f"_cmd_{command}")
        return handler(key, *args)

    # =========================================================================
    # Commands (reply types follow redis-py's response callbacks)
    # =========================================================================

    def _cmd_setnx(self, key: str, value: int) -> bool:
        if key in self._data:
            return False
        self._data[key] = int(value)
        self._touch(key)
        return True

    def _cmd_expire(self, key: str, seconds: int, nx: bool) -> bool:
        if key not in self._data:
            return False
        if nx and key in self._expiry:
            return False
        self._expiry[key] = self._clock() + seconds
        self._touch(key)
        return True

    def _cmd_incr(self, key: str) -> int:
        # INCR keeps an existing TTL
        value = self._data.get(key, 0) + 1
        self._data[key] = value
        self._touch(key)
        return value

    def _cmd_ttl(self, key: str) -> int:
        if key not in self._data:
            return -2
        if key not in self._expiry:
            return -1
        # Redis rounds the remaining milliseconds to the nearest second
        return int(self._expiry[key] - self._clock() + 0.5)

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def keys(self) -> list[str]:
        """All non-expired keys."""
        return [k for k in list(self._data) if not self._is_expired(k)]

    def value(self, key: str) -> int | None:
        """Current counter for a key, or None if absent or expired."""
        self._cleanup_if_expired(key)
        return self._data.get(key)
