from contextlib import AbstractAsyncContextManager

from redis.asyncio import Redis

from ratewindow.core.storage.base import StorageBackend, Transaction


class RedisBackend(StorageBackend):
    """
    Redis implementation of the storage contract.

    The client, and the connection pool behind it, is owned by the caller.
    This backend only borrows connections.
    """

    def __init__(self, redis: Redis):
        self._redis = redis

    async def ping(self) -> bool:
        # redis-py maps the "PONG" reply to True
        return bool(await self._redis.ping())

    def transaction(self) -> AbstractAsyncContextManager[Transaction]:
        # Pipeline.reset() on exit sends UNWATCH and releases the connection
        return self._redis.pipeline(transaction=True)
