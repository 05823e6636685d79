"""
Exception types raised by the rate window counter.

Every failure is surfaced to the caller. An error means no decision was
made; it must never be read as "request denied".
"""

from dataclasses import dataclass


@dataclass
class RateWindowError(Exception):
    """
    Base error for the package.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
    """

    code: str
    message: str

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ConnectionFailure(RateWindowError):
    """The store could not be reached or a connection could not be obtained."""

    def __init__(self, message: str) -> None:
        super().__init__("connection_failure", message)


class TransactionFailure(RateWindowError):
    """A transaction aborted or returned results of an unexpected shape."""

    def __init__(self, message: str) -> None:
        super().__init__("transaction_failure", message)


class UnexpectedResponse(RateWindowError):
    """The liveness check returned something other than an acknowledgment."""

    def __init__(self, message: str) -> None:
        super().__init__("unexpected_response", message)


class InvalidRate(RateWindowError):
    def __init__(self, message: str) -> None:
        super().__init__("invalid_rate", message)


class InvalidIdentifier(RateWindowError):
    def __init__(self, message: str) -> None:
        super().__init__("invalid_identifier", message)
