"""
Technical Indicators
--------------------

Pure functions that turn a `Candle` series (oldest -> newest) into the
latest value of a fixed set of lagging indicators.

No function here raises on short input: when a series is shorter than
the indicator's window the result is 0.0, which callers must read as
"indicator not yet meaningful".
"""

import logging
from typing import Sequence

import pandas as pd

from .domain import Candle, IndicatorSnapshot

logger = logging.getLogger(__name__)

BREAKOUT_WINDOW = 20


def _series(values: Sequence[float]) -> pd.Series:
    return pd.Series(list(values), dtype="float64")


def _candle_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
        },
        dtype="float64",
    )


def sma(values: Sequence[float], length: int) -> float:
    """Average of the last `length` values."""
    if length <= 0 or len(values) < length:
        return 0.0
    return float(_series(values[-length:]).mean())


def ema(values: Sequence[float], length: int) -> float:
    """
    Exponential moving average seeded with the SMA of the first `length`
    values, then `ema = v * k + ema * (1 - k)` with `k = 2 / (length + 1)`
    over the remaining values in time order.
    """
    if length <= 0 or len(values) < length:
        return 0.0
    seed = sma(values[:length], length)
    # With adjust=False the first element is taken as-is, so seeding it
    # with the SMA reproduces the recurrence exactly.
    seeded = _series([seed, *values[length:]])
    return float(seeded.ewm(alpha=2 / (length + 1), adjust=False).mean().iloc[-1])


def rsi(values: Sequence[float], period: int = 14) -> float:
    """Relative strength over the trailing `period` price changes only."""
    if period <= 0 or len(values) <= period:
        return 0.0

    deltas = _series(values[-(period + 1):]).diff().iloc[1:]
    gains = float(deltas.clip(lower=0).sum())
    losses = float(-deltas.clip(upper=0).sum())

    if losses == 0:
        return 100.0
    rs = gains / losses
    return 100 - 100 / (1 + rs)


def atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Mean true range of the trailing `period` bars."""
    if period <= 0 or len(candles) <= period:
        return 0.0

    # One extra bar so the oldest bar in the window has a previous close
    df = _candle_frame(candles[-(period + 1):])
    prev_close = df["close"].shift(1)
    true_range = pd.concat(
        [
            df["high"] - df["low"],
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    return float(true_range.iloc[1:].mean())


def max_high(candles: Sequence[Candle], window: int = BREAKOUT_WINDOW) -> float:
    if window <= 0 or len(candles) < window:
        return 0.0
    return float(max(c.high for c in candles[-window:]))


def min_low(candles: Sequence[Candle], window: int = BREAKOUT_WINDOW) -> float:
    if window <= 0 or len(candles) < window:
        return 0.0
    return float(min(c.low for c in candles[-window:]))


def build_indicator_snapshot(candles: Sequence[Candle]) -> IndicatorSnapshot:
    """Computes the full indicator set used by the advisor."""
    if len(candles) < 50:
        logger.warning(f"Only {len(candles)} candles available; some indicators will be 0.")

    closes = [c.close for c in candles]
    return IndicatorSnapshot(
        sma20=sma(closes, 20),
        sma50=sma(closes, 50),
        ema12=ema(closes, 12),
        ema26=ema(closes, 26),
        rsi14=rsi(closes, 14),
        atr14=atr(candles, 14),
        max_high20=max_high(candles),
        min_low20=min_low(candles),
    )
