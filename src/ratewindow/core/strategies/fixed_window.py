import time
from typing import Any, Callable

import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ratewindow.core.errors import (
    ConnectionFailure,
    InvalidIdentifier,
    InvalidRate,
    TransactionFailure,
    UnexpectedResponse,
)
from ratewindow.core.rate import Rate
from ratewindow.core.storage.base import StorageBackend, Transaction
from ratewindow.core.strategies.base import CounterStrategy, Decision

logger = structlog.get_logger(__name__)

DEFAULT_PREFIX = "ratelimit"


def _expect_ints(results: Any, arity: int) -> list[int]:
    """Validate an EXEC reply: exactly `arity` integer results."""
    if not isinstance(results, (list, tuple)) or len(results) != arity:
        raise TransactionFailure(f"expected {arity} results from EXEC, got {results!r}")

    values = []
    for value in results:
        # redis-py hands back bools for SETNX/EXPIRE and ints for INCR/TTL
        if not isinstance(value, int):
            raise TransactionFailure(f"expected integer results from EXEC, got {results!r}")
        values.append(int(value))
    return values


class FixedWindowStrategy(CounterStrategy):
    """
    Fixed window counter kept in a shared store.

    Each identifier maps to one key, "<prefix>:<identifier>", holding the
    number of requests seen since the window opened. The key's TTL is set
    once when the window opens and the store deletes it when the window
    ends; nothing here ever deletes or extends it.

    Two transactions per call at most:
    1. WATCH key; MULTI; SETNX key 1; EXPIRE key period NX; EXEC.
       A 1 from SETNX means this call opened the window.
    2. Otherwise MULTI; INCR key; EXPIRE key period NX; TTL key; EXEC.

    No in-process lock is held. Linearization across processes comes from
    the store: SETNX lets exactly one caller open a window, and a caller
    whose first EXEC is aborted by a concurrent write falls through to the
    increment, so no two callers ever observe the same count.
    """

    def __init__(
        self,
        backend: StorageBackend,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._prefix = prefix or DEFAULT_PREFIX
        self._clock = clock

    @classmethod
    async def create(
        cls,
        backend: StorageBackend,
        prefix: str = "",
        clock: Callable[[], float] = time.time,
    ) -> "FixedWindowStrategy":
        """
        Build a strategy and check the store is alive.

        Raises:
            ConnectionFailure: The store could not be reached.
            UnexpectedResponse: The store answered the ping with something
                other than an acknowledgment.
        """
        strategy = cls(backend, prefix, clock)
        await strategy._ping()
        return strategy

    @property
    def prefix(self) -> str:
        return self._prefix

    def key_for(self, identifier: str) -> str:
        return f"{self._prefix}:{identifier}"

    async def _ping(self) -> None:
        try:
            alive = await self._backend.ping()
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error("store_ping_failed", error=str(exc))
            raise ConnectionFailure(f"cannot reach store: {exc}") from exc
        except RedisError as exc:
            logger.error("store_ping_failed", error=str(exc))
            raise UnexpectedResponse(f"store rejected ping: {exc}") from exc

        if alive is not True:
            logger.error("store_ping_failed", reply=repr(alive))
            raise UnexpectedResponse(f"unexpected ping reply {alive!r}")

    def _now(self) -> int:
        # Microsecond clock truncated to whole seconds
        return int(self._clock() * 1_000_000) // 1_000_000

    async def get(self, identifier: str, rate: Rate) -> Decision:
        if not isinstance(identifier, str) or not identifier:
            raise InvalidIdentifier("identifier must be a non-empty string")
        if not isinstance(rate, Rate):
            raise InvalidRate(f"expected a Rate, got {type(rate).__name__}")

        key = self.key_for(identifier)
        log = logger.bind(key=key, limit=rate.limit, period=rate.period)

        try:
            async with self._backend.transaction() as tx:
                if await self._claim(tx, key, rate, log):
                    log.debug("window_created")
                    return Decision(
                        limit=rate.limit,
                        remaining=rate.limit - 1,
                        reset_at=self._now() + rate.period,
                        reached=False,
                    )

                count, ttl = await self._increment(tx, key, rate)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            log.error("store_connection_failed", error=str(exc))
            raise ConnectionFailure(f"store connection failed for {key}: {exc}") from exc
        except RedisError as exc:
            log.error("transaction_failed", error=str(exc))
            raise TransactionFailure(f"transaction failed for {key}: {exc}") from exc

        remaining = rate.limit - count if count < rate.limit else 0
        # Strictly greater: the request that brings count to exactly
        # limit still goes through
        reached = count > rate.limit

        if reached:
            log.info("window_limit_reached", count=count, ttl=ttl)
        else:
            log.debug("window_incremented", count=count, ttl=ttl)

        return Decision(
            limit=rate.limit,
            remaining=remaining,
            reset_at=self._now() + ttl,
            reached=reached,
        )

    async def _claim(self, tx: Transaction, key: str, rate: Rate, log: Any) -> bool:
        await tx.watch(key)
        tx.multi()
        tx.setnx(key, 1)
        # NX: never touch the TTL of a window that is already open
        tx.expire(key, rate.period, nx=True)

        try:
            results = await tx.execute()
        except WatchError as exc:
            # redis-py also raises WatchError when the connection drops
            # mid-EXEC; the EXEC may have committed, so never fall through
            cause = exc.__cause__ or exc.__context__
            if isinstance(cause, (RedisConnectionError, RedisTimeoutError)):
                log.error("store_connection_failed", error=str(cause))
                raise ConnectionFailure(f"connection lost during EXEC for {key}: {cause}") from exc

            # Another caller wrote the key between WATCH and EXEC
            log.debug("window_watch_conflict")
            return False

        created, _ = _expect_ints(results, 2)
        return created == 1

    async def _increment(self, tx: Transaction, key: str, rate: Rate) -> tuple[int, int]:
        tx.multi()
        tx.incr(key)
        # Only lands if the key vanished and INCR recreated it without a TTL
        tx.expire(key, rate.period, nx=True)
        tx.ttl(key)

        count, _, ttl = _expect_ints(await tx.execute(), 3)
        return count, ttl
