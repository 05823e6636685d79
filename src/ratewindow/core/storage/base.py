"""
Contract between the window counter and the key-value store.

The counter never talks to a connection directly. It asks the backend for
a scoped transaction, which borrows a connection from the pool and hands
it back on every exit path, including errors.

The transaction surface deliberately mirrors `redis.asyncio.client.Pipeline`
so the Redis implementation is a thin pass-through:

    async with backend.transaction() as tx:
        await tx.watch(key)
        tx.multi()
        tx.setnx(key, 1)
        tx.expire(key, 60, nx=True)
        created, _ = await tx.execute()

`execute` raises `redis.exceptions.WatchError` if a watched key was
modified between `watch` and `execute`. Every backend reports failures
with the `redis.exceptions` hierarchy so callers translate one family.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class Transaction(Protocol):
    async def watch(self, *keys: str) -> Any: ...

    def multi(self) -> None: ...

    def setnx(self, key: str, value: int) -> Any: ...

    def expire(self, key: str, seconds: int, nx: bool = False) -> Any: ...

    def incr(self, key: str) -> Any: ...

    def ttl(self, key: str) -> Any: ...

    async def execute(self) -> list[Any]: ...


class StorageBackend(ABC):
    """
    Shared store with expiring keys and optimistic transactions.

    Available implementations:
    - RedisBackend: For production (distributed, shared by many processes)
    - InMemoryBackend: For testing and development (single process)
    """

    @abstractmethod
    async def ping(self) -> bool:
        """
        Trivial round trip used to validate the store at construction time.

        Returns:
            True when the store acknowledged the ping.
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[Transaction]:
        """
        Borrow a connection for one or more MULTI/EXEC blocks.

        Leaving the context unwatches any keys and returns the connection
        to the pool.
        """
        pass
