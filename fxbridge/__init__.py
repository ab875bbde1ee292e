"""
FX Bridge Infrastructure Package
================================

This package provides a clean, asynchronous adapter layer for the
trading pipeline: market-data providers, indicator math, position
sizing and the MetaApi bridge to a remote MetaTrader terminal.

Package Structure:
------------------
- domain.py:      Pure data classes (domain models).
- errors.py:      The pipeline's exception taxonomy.
- ports.py:       Abstract interfaces (Ports) for services.
- connector.py:   Manages the MetaApi session lifecycle.
- gateway.py:     Broker queries and order submission over MetaApi.
- providers.py:   Market-data providers (AlphaVantage, Twelve Data).
- indicators.py:  Pure technical indicator functions.
- utils.py:       Position sizing and string helpers.

Public API:
-----------
This __init__.py file acts as a Facade, re-exporting the key public
components, e.g. `from fxbridge import MetaApiConnector, TradeSignal`.
"""

import logging

# Set up a default null handler to avoid "No handler found" warnings
# if the consuming application doesn't configure logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Export Domain Models
from .domain import (
    AccountSnapshot,
    AccountStatus,
    Candle,
    ConnectionState,
    CycleResult,
    IndicatorSnapshot,
    PositionSnapshot,
    PriceQuote,
    RiskProfile,
    StrategySettings,
    SymbolSpecification,
    TradeRequest,
    TradeResult,
    TradeSignal
)

# Export Errors
from .errors import (
    TradingError,
    ConfigurationError,
    DataFetchError,
    DeploymentTimeout,
    OrderRejected
)

# Export Ports (Interfaces)
from .ports import (
    IMarketDataSource,
    IBrokerGateway
)

# Export Connection Manager and Gateway
from .connector import MetaApiConnector
from .gateway import MetaApiBrokerGateway, SUCCESS_CODES

# Export Market Data Providers
from .providers import (
    AlphaVantageDataSource,
    TwelveDataSource,
    create_market_data_source
)

# Export Indicator Functions
from .indicators import build_indicator_snapshot

# Export Utilities
from .utils import (
    round_to_step,
    calculate_lot_size,
    safe_comment
)


__all__ = [
    # Domain
    "AccountSnapshot",
    "AccountStatus",
    "Candle",
    "ConnectionState",
    "CycleResult",
    "IndicatorSnapshot",
    "PositionSnapshot",
    "PriceQuote",
    "RiskProfile",
    "StrategySettings",
    "SymbolSpecification",
    "TradeRequest",
    "TradeResult",
    "TradeSignal",

    # Errors
    "TradingError",
    "ConfigurationError",
    "DataFetchError",
    "DeploymentTimeout",
    "OrderRejected",

    # Ports
    "IMarketDataSource",
    "IBrokerGateway",

    # Infrastructure & Services
    "MetaApiConnector",
    "MetaApiBrokerGateway",
    "SUCCESS_CODES",
    "AlphaVantageDataSource",
    "TwelveDataSource",
    "create_market_data_source",
    "build_indicator_snapshot",

    # Utilities
    "calculate_lot_size",
    "round_to_step",
    "safe_comment",
]
