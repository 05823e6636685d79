from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from redis.asyncio import from_url

from ratewindow.config import Settings, get_settings
from ratewindow.core.limiter import Limiter
from ratewindow.core.logging import setup_logging
from ratewindow.core.storage.redis import RedisBackend
from ratewindow.core.strategies.fixed_window import FixedWindowStrategy

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def limiter_lifespan(settings: Settings | None = None) -> AsyncGenerator[Limiter, None]:
    """
    Owns the Redis client for the lifetime of a Limiter.

    The strategy only borrows connections; the pool is closed here once
    the caller is done.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_json)

    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )

    try:
        strategy = await FixedWindowStrategy.create(
            RedisBackend(redis_client),
            prefix=settings.key_prefix,
        )
        limiter = Limiter(strategy, settings.rate)

        logger.info("limiter_started", prefix=strategy.prefix, rate=settings.rate.formatted)
        yield limiter
    finally:
        await redis_client.aclose()
        logger.info("limiter_stopped")
