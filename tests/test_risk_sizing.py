from __future__ import annotations

from decimal import Decimal

import pytest

from fxbridge import SymbolSpecification, calculate_lot_size, round_to_step, safe_comment


def _spec(**overrides) -> SymbolSpecification:
    values = dict(symbol="EURUSD", contract_size=100000, point=0.0001, digits=5,
                  min_volume=0.01, volume_step=0.01)
    values.update(overrides)
    return SymbolSpecification(**values)


def test_reference_example_sizes_half_a_lot() -> None:
    # risk 100, pip value 10, raw 0.5
    assert calculate_lot_size(10000, 1, 20, _spec()) == 0.50


def test_volume_is_floored_to_the_step() -> None:
    # raw = 100 / (30 * 10) = 0.333...
    assert calculate_lot_size(10000, 1, 30, _spec()) == 0.33
    assert calculate_lot_size(10000, 1, 30, _spec(volume_step=0.1, min_volume=0.1)) == 0.3


def test_volume_never_drops_below_minimum() -> None:
    assert calculate_lot_size(100, 0.1, 500, _spec()) == 0.01
    assert calculate_lot_size(0, 1, 20, _spec(min_volume=0.1, volume_step=0.1)) == 0.1


@pytest.mark.parametrize("balance,risk,stop,step", [
    (10000, 1, 20, 0.01),
    (25310.55, 0.75, 17.5, 0.01),
    (5000, 2, 33, 0.05),
    (1234567, 5, 12, 0.1),
])
def test_result_is_a_step_multiple_at_or_above_minimum(balance, risk, stop, step) -> None:
    spec = _spec(volume_step=step, min_volume=step)
    volume = calculate_lot_size(balance, risk, stop, spec)

    assert volume >= spec.min_volume
    assert Decimal(str(volume)) % Decimal(str(step)) == 0


def test_zero_stop_distance_is_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_lot_size(10000, 1, 0, _spec())


def test_zero_pip_value_is_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_lot_size(10000, 1, 20, _spec(point=0))


def test_round_to_step_rounds_down() -> None:
    assert round_to_step(0.128, 0.01) == 0.12
    assert round_to_step(0.14, 0.05) == 0.1
    assert round_to_step(0.15, 0.05) == 0.15


def test_safe_comment_strips_non_ascii_and_truncates() -> None:
    assert safe_comment("Gemini buy @ EURUSD ✓") == "Gemini buy @ EURUSD "
    assert len(safe_comment("x" * 80)) == 31
    assert safe_comment("") == ""
