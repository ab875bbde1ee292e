"""
Error Taxonomy
--------------

Every failure that aborts a decision cycle is raised as one of the
exceptions below. Malformed advisor output is deliberately absent:
it is converted into a hold signal and never raised.

`stage` is filled in by the engine ("fetch", "size", "execute") so
the caller can tell where a cycle stopped.
"""

from typing import Optional


class TradingError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class ConfigurationError(TradingError, ValueError):
    """Missing or invalid credentials / risk parameters."""


class DataFetchError(TradingError):
    """Market data or account query failed."""


class DeploymentTimeout(TradingError, TimeoutError):
    """The broker account did not reach the DEPLOYED state in time."""


class OrderRejected(TradingError):
    """The broker answered an order with a non-success result code."""

    def __init__(self,
                 numeric_code: Optional[int],
                 string_code: Optional[str],
                 broker_message: Optional[str],
                 stage: Optional[str] = None):
        self.numeric_code = numeric_code
        self.string_code = string_code
        self.broker_message = broker_message
        super().__init__(
            f"Trade failed ({string_code or 'UNKNOWN'}, code {numeric_code}): {broker_message or 'no message'}",
            stage=stage
        )
