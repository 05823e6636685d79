import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock, Mock

from ratewindow import bootstrap
from ratewindow.config import Settings, get_settings
from ratewindow.core.errors import ConnectionFailure
from ratewindow.core.rate import Rate


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("REDIS_URL", "KEY_PREFIX", "DEFAULT_RATE", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(f"RATEWINDOW_{name}", raising=False)
    # Keep a developer's .env out of the picture
    monkeypatch.chdir("/")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings()

    assert settings.key_prefix == "ratelimit"
    assert settings.rate == Rate(limit=100, period=60)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RATEWINDOW_REDIS_URL", "redis://cache:6380/2")
    monkeypatch.setenv("RATEWINDOW_KEY_PREFIX", "api")
    monkeypatch.setenv("RATEWINDOW_DEFAULT_RATE", "5-S")

    settings = get_settings()

    assert settings.redis_url == "redis://cache:6380/2"
    assert settings.key_prefix == "api"
    assert settings.rate == Rate(limit=5, period=1)
    assert get_settings() is settings


def test_bad_rate_is_rejected(monkeypatch):
    monkeypatch.setenv("RATEWINDOW_DEFAULT_RATE", "lots")

    with pytest.raises(ValidationError):
        Settings()


@pytest.fixture
def redis_client(monkeypatch):
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    from_url = Mock(return_value=client)
    monkeypatch.setattr(bootstrap, "from_url", from_url)
    monkeypatch.setattr(bootstrap, "setup_logging", Mock())
    return client


@pytest.mark.asyncio
async def test_lifespan_builds_limiter_and_closes_client(redis_client):
    settings = Settings(redis_url="redis://cache:6379/0", key_prefix="edge", default_rate="10-M")

    async with bootstrap.limiter_lifespan(settings) as limiter:
        assert limiter.rate == Rate(limit=10, period=60)
        assert limiter.strategy.key_for("u1") == "edge:u1"
        redis_client.aclose.assert_not_awaited()

    bootstrap.from_url.assert_called_once_with(
        "redis://cache:6379/0", encoding="utf-8", decode_responses=True
    )
    redis_client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_lifespan_closes_client_when_store_is_down(redis_client):
    from redis.exceptions import ConnectionError as RedisConnectionError

    redis_client.ping.side_effect = RedisConnectionError("Connection refused")

    with pytest.raises(ConnectionFailure):
        async with bootstrap.limiter_lifespan(Settings()):
            pass

    redis_client.aclose.assert_awaited_once()


def test_setup_logging_configures_structlog():
    import structlog

    from ratewindow.core.logging import setup_logging

    try:
        setup_logging("debug", json_logs=False)
        assert structlog.is_configured()
    finally:
        structlog.reset_defaults()
