"""
Application Ports (Interfaces)
------------------------------

This file defines the abstract interfaces (Ports) that the core
application logic interacts with. This adheres to the
Dependency Inversion Principle (D of SOLID).

The engine should only depend on these protocols,
not on the concrete MetaApi or HTTP provider implementations.
"""

from typing import List, Protocol

from .domain import (
    AccountSnapshot,
    Candle,
    PositionSnapshot,
    PriceQuote,
    SymbolSpecification,
    TradeRequest,
    TradeResult
)


# --- Market Data Port ---

class IMarketDataSource(Protocol):
    """Interface for fetching OHLCV history from a market-data provider."""

    async def fetch(self, symbol: str, interval: str = "5min", size: str = "compact") -> List[Candle]:
        """
        Fetches candle history, normalized and sorted oldest -> newest.
        Raises DataFetchError on transport failure or an unexpected payload.
        """
        ...


# --- Broker Port ---

class IBrokerGateway(Protocol):
    """Interface for querying and trading on the remote terminal."""

    async def get_account_snapshot(self) -> AccountSnapshot:
        """Fetches the current account state."""
        ...

    async def get_open_positions(self) -> List[PositionSnapshot]:
        """Fetches all open positions from the account."""
        ...

    async def get_symbol_specification(self, symbol: str) -> SymbolSpecification:
        """Fetches trading constraints for a symbol."""
        ...

    async def get_price(self, symbol: str) -> PriceQuote:
        """Returns the latest bid/ask for the given symbol."""
        ...

    async def submit_order(self, request: TradeRequest) -> TradeResult:
        """
        Places a market order with SL/TP derived from pip distances.
        Raises OrderRejected on a non-success result code. Never retries.
        """
        ...
