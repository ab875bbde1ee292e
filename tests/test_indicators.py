from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fakes import make_candles
from fxbridge import Candle, IndicatorSnapshot, build_indicator_snapshot
from fxbridge.indicators import atr, ema, max_high, min_low, rsi, sma


def test_short_series_yield_zero_sentinels() -> None:
    closes = [1.1] * 10
    candles = make_candles(closes)

    assert sma(closes, 20) == 0.0
    assert ema(closes, 12) == 0.0
    assert rsi(closes, 14) == 0.0
    assert atr(candles, 14) == 0.0
    assert max_high(candles) == 0.0
    assert min_low(candles) == 0.0
    assert build_indicator_snapshot(candles[:0]) == IndicatorSnapshot()


def test_rsi_and_atr_need_one_bar_more_than_the_period() -> None:
    closes = [1.0 + i * 0.01 for i in range(14)]

    assert rsi(closes, 14) == 0.0
    assert atr(make_candles(closes), 14) == 0.0
    assert rsi(closes + [1.2], 14) == 100.0


def test_sma_uses_only_the_last_values() -> None:
    assert sma([100.0, 1.0, 2.0, 3.0], 3) == pytest.approx(2.0)


def test_ema_seeds_with_sma_then_applies_recurrence() -> None:
    # seed = mean(1, 2, 3) = 2, k = 0.5 -> 3.0 -> 4.0
    assert ema([1.0, 2.0, 3.0, 4.0, 5.0], 3) == pytest.approx(4.0)


def test_ema_of_constant_series_is_the_constant() -> None:
    assert ema([1.2345] * 40, 12) == pytest.approx(1.2345)
    assert ema([1.2345] * 26, 26) == pytest.approx(1.2345)


def test_rsi_is_100_without_losses() -> None:
    assert rsi([1.0 + i * 0.001 for i in range(30)], 14) == 100.0


def test_rsi_only_looks_at_the_trailing_window() -> None:
    falling_history = [2.0 - i * 0.01 for i in range(40)]
    rising_tail = [falling_history[-1] + i * 0.001 for i in range(1, 16)]

    assert rsi(falling_history + rising_tail, 14) == 100.0


def test_rsi_with_mixed_moves_is_strictly_between_bounds() -> None:
    closes = [1.0, 1.02, 1.01, 1.03, 1.02, 1.04, 1.03, 1.05, 1.04, 1.06, 1.05, 1.07, 1.06, 1.08, 1.07]
    # gains: 7 * 0.02 = 0.14, losses: 7 * 0.01 = 0.07 -> rs = 2
    value = rsi(closes, 14)

    assert 0 < value < 100
    assert value == pytest.approx(100 - 100 / 3)


def test_atr_uses_previous_close_for_gaps() -> None:
    t = datetime(2025, 1, 1, tzinfo=timezone.utc)
    candles = [Candle(time=t, open=1.0, high=1.0, low=1.0, close=1.0)] * 14
    gap = Candle(time=t, open=1.1, high=1.12, low=1.1, close=1.11)

    # 13 flat bars (TR 0) and one gap bar with TR = 1.12 - 1.0
    assert atr(candles + [gap], 14) == pytest.approx(0.12 / 14)


def test_atr_of_uniform_bars_is_the_bar_range() -> None:
    assert atr(make_candles([1.1] * 30), 14) == pytest.approx(0.001)


def test_breakout_levels_use_last_twenty_bars() -> None:
    closes = [5.0] + [1.0 + i * 0.01 for i in range(20)]
    candles = make_candles(closes)

    assert max_high(candles) == pytest.approx(1.19 + 0.0005)
    assert min_low(candles) == pytest.approx(1.0 - 0.0005)


def test_snapshot_populates_every_indicator_with_enough_data() -> None:
    snapshot = build_indicator_snapshot(make_candles([1.1 + (i % 7) * 0.001 for i in range(60)]))

    for value in (snapshot.sma20, snapshot.sma50, snapshot.ema12, snapshot.ema26,
                  snapshot.rsi14, snapshot.atr14, snapshot.max_high20, snapshot.min_low20):
        assert value > 0
    assert snapshot.min_low20 < snapshot.max_high20
