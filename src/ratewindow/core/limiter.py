from ratewindow.core.rate import Rate
from ratewindow.core.strategies.base import CounterStrategy, Decision


class Limiter:
    """
    Binds one rate to a counter strategy.

    Callers that enforce several quotas keep one Limiter per quota; they
    can share the same strategy, and therefore the same connection pool.
    """

    def __init__(self, strategy: CounterStrategy, rate: Rate):
        self.strategy = strategy
        self.rate = rate

    async def check(self, identifier: str) -> Decision:
        return await self.strategy.get(identifier, self.rate)
