"""
Trading Domain Models
---------------------

This file defines the pure data classes (dataclasses) that represent
the core concepts of the trading domain.

These models are independent of the MetaApi SDK, the market-data
providers and the LLM transport. They are the "nouns" of the system.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from .errors import ConfigurationError

TRADE_ACTIONS = ("buy", "sell")
SIGNAL_ACTIONS = ("buy", "sell", "hold")


@dataclass(frozen=True)
class Candle:
    """Represents a single OHLCV candle. Series are ordered oldest -> newest."""
    time: datetime  # UTC
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Latest value of each lagging indicator for one candle series.
    A value of 0.0 means "not enough data yet".
    """
    sma20: float = 0.0
    sma50: float = 0.0
    ema12: float = 0.0
    ema26: float = 0.0
    rsi14: float = 0.0
    atr14: float = 0.0
    max_high20: float = 0.0
    min_low20: float = 0.0


@dataclass(frozen=True)
class TradeSignal:
    """Structured recommendation produced once per cycle by the advisor."""
    action: str  # 'buy', 'sell' or 'hold'
    confidence: float
    stop_loss_pips: float
    take_profit_pips: float
    rationale: str
    risk_factors: Tuple[str, ...] = ()

    @classmethod
    def fallback(cls) -> "TradeSignal":
        """The safe signal used whenever advisor output cannot be read."""
        return cls(
            action="hold",
            confidence=0.0,
            stop_loss_pips=0.0,
            take_profit_pips=0.0,
            rationale="parse failure",
            risk_factors=("advisor output unreadable",)
        )


@dataclass(frozen=True)
class RiskProfile:
    """Caller-supplied risk budget. Values are percentages where noted."""
    risk_per_trade: float           # % of balance risked per trade
    max_concurrent_trades: int = 3
    max_drawdown: float = 10.0      # %

    def __post_init__(self):
        if not _is_number(self.risk_per_trade) or not 0.1 <= self.risk_per_trade <= 5:
            raise ConfigurationError(f"risk_per_trade must be between 0.1 and 5, got {self.risk_per_trade!r}")
        if isinstance(self.max_concurrent_trades, bool) or not isinstance(self.max_concurrent_trades, int) \
                or not 1 <= self.max_concurrent_trades <= 10:
            raise ConfigurationError(
                f"max_concurrent_trades must be an integer between 1 and 10, got {self.max_concurrent_trades!r}")
        if not _is_number(self.max_drawdown) or not 1 <= self.max_drawdown <= 50:
            raise ConfigurationError(f"max_drawdown must be between 1 and 50, got {self.max_drawdown!r}")


@dataclass(frozen=True)
class StrategySettings:
    """Everything the engine needs to know about one strategy instance."""
    symbol: str
    risk_profile: RiskProfile
    timeframe: str = "M5"
    magic_number: int = 18012025

    def __post_init__(self):
        if not self.symbol or len(self.symbol) < 6:
            raise ConfigurationError(f"symbol must be a 6+ character pair, got {self.symbol!r}")


@dataclass(frozen=True)
class AccountSnapshot:
    """Current state of the trading account. Read fresh every cycle."""
    balance: float
    equity: float
    margin: float
    free_margin: float
    leverage: int
    currency: str


@dataclass(frozen=True)
class PositionSnapshot:
    """Consolidated info about an open position."""
    id: str
    symbol: str
    type: str  # 'buy' or 'sell'
    volume: float
    price: float
    profit: float = 0.0
    unrealized_profit: float = 0.0
    comment: Optional[str] = None


@dataclass(frozen=True)
class SymbolSpecification:
    """
    Broker trading constraints for a symbol.
    Immutable for the lifetime of a broker connection.
    """
    symbol: str
    contract_size: float
    point: float                # price of one pip/point
    digits: int
    min_volume: float           # Minimum trade volume (e.g., 0.01)
    volume_step: float          # Lot step (e.g., 0.01 or 1.0)


@dataclass(frozen=True)
class PriceQuote:
    """Represents a live bid/ask price."""
    symbol: str
    bid: float
    ask: float


@dataclass(frozen=True)
class TradeRequest:
    """Market order parameters. Built once per cycle and never retried."""
    symbol: str
    action: str  # 'buy' or 'sell'
    lot_size: float
    stop_loss_pips: float
    take_profit_pips: float
    magic_number: int
    comment: Optional[str] = None

    def __post_init__(self):
        if self.action not in TRADE_ACTIONS:
            raise ValueError(f"action must be 'buy' or 'sell', got {self.action!r}")
        if self.lot_size <= 0:
            raise ValueError(f"lot_size must be positive, got {self.lot_size}")
        if self.stop_loss_pips <= 0 or self.take_profit_pips <= 0:
            raise ValueError("stop_loss_pips and take_profit_pips must be positive")


@dataclass(frozen=True)
class TradeResult:
    """Broker acknowledgement of an accepted order."""
    numeric_code: int
    string_code: Optional[str] = None
    message: Optional[str] = None
    order_id: Optional[str] = None
    position_id: Optional[str] = None

    @property
    def trade_id(self) -> Optional[str]:
        return self.order_id or self.position_id


@dataclass(frozen=True)
class CycleResult:
    """The single outcome of one `run_cycle` call."""
    signal: TradeSignal
    lot_size: Optional[float] = None
    executed_trade_id: Optional[str] = None
    skipped_reason: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.skipped_reason is None:
            return "executed"
        if self.lot_size is not None:
            return "sized-but-skipped"
        return "skipped"


@dataclass(frozen=True)
class AccountStatus:
    """Account snapshot plus open positions, as shown on a dashboard."""
    account: AccountSnapshot
    positions: Tuple[PositionSnapshot, ...] = field(default_factory=tuple)


class ConnectionState(enum.IntEnum):
    """Lifecycle of a broker session. Ordering is meaningful."""
    UNINITIALIZED = 0
    ACCOUNT_RESOLVED = 1
    DEPLOYING = 2
    DEPLOYED = 3
    CONNECTED = 4
    SYNCHRONIZED = 5
    CLOSED = 6


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
