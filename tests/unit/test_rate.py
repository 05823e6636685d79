import pytest
from unittest.mock import AsyncMock

from ratewindow.core.errors import InvalidRate
from ratewindow.core.limiter import Limiter
from ratewindow.core.rate import Rate
from ratewindow.core.strategies.base import Decision


@pytest.mark.parametrize(
    "formatted, limit, period",
    [
        ("5-S", 5, 1),
        ("100-M", 100, 60),
        ("1000-h", 1000, 3600),
        ("20000-D", 20000, 86400),
        (" 7 - m ", 7, 60),
    ],
)
def test_from_formatted(formatted, limit, period):
    assert Rate.from_formatted(formatted) == Rate(limit=limit, period=period)


@pytest.mark.parametrize("formatted", ["", "10", "10-W", "-M", "ten-M", "10-MS", "0-M"])
def test_from_formatted_rejects_bad_input(formatted):
    with pytest.raises(InvalidRate):
        Rate.from_formatted(formatted)


@pytest.mark.parametrize(
    "limit, period",
    [(0, 60), (-1, 60), (10, 0), (10, -5), (1.5, 60), (10, 0.5), (True, 60)],
)
def test_invalid_rate_is_caller_error(limit, period):
    with pytest.raises(InvalidRate):
        Rate(limit=limit, period=period)


def test_formatted_round_trips_canonical_units():
    assert Rate(limit=100, period=60).formatted == "100-M"
    assert Rate(limit=3, period=1).formatted == "3-S"
    assert Rate(limit=3, period=90).formatted == "3/90s"


def test_rate_is_immutable():
    rate = Rate(limit=5, period=60)

    with pytest.raises(AttributeError):
        rate.limit = 6


def test_decision_headers():
    decision = Decision(limit=10, remaining=3, reset_at=1_700_000_060, reached=False)

    assert decision.headers() == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "3",
        "X-RateLimit-Reset": "1700000060",
    }


def test_decision_retry_after_never_negative():
    decision = Decision(limit=1, remaining=0, reset_at=1_700_000_060, reached=True)

    assert not decision.is_allowed
    assert decision.retry_after(now=1_700_000_000.9) == 60
    assert decision.retry_after(now=1_700_000_100) == 0


@pytest.mark.asyncio
async def test_limiter_applies_its_rate():
    rate = Rate(limit=5, period=60)
    expected = Decision(limit=5, remaining=4, reset_at=1_700_000_060, reached=False)
    strategy = AsyncMock()
    strategy.get.return_value = expected

    decision = await Limiter(strategy, rate).check("user:1")

    assert decision is expected
    strategy.get.assert_awaited_once_with("user:1", rate)


def test_non_canonical_period_does_not_parse_back():
    rendered = Rate(limit=3, period=90).formatted

    with pytest.raises(InvalidRate):
        Rate.from_formatted(rendered)
