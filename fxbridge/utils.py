"""
Sizing Helpers
--------------

Pure functions for turning a risk budget into a broker-valid volume,
plus order comment sanitization. All volume math runs on `Decimal`
so step flooring is exact (0.3 / 0.1 is 3, not 2.9999...).
"""

import logging
import re
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

from .domain import SymbolSpecification

logger = logging.getLogger(__name__)

LOT_PRECISION = Decimal("0.01")
MAX_COMMENT_LENGTH = 31
RE_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")


def round_to_step(value: float, step: float) -> float:
    """
    Floors `value` to a whole number of `step`s:
    0.128 @ 0.01 -> 0.12, 0.14 @ 0.05 -> 0.1, 0.15 @ 0.05 -> 0.15.
    A non-positive step leaves the value untouched.
    """
    if step <= 0:
        return value

    step_dec = Decimal(str(step))
    whole_steps = (Decimal(str(value)) / step_dec).to_integral_value(rounding=ROUND_FLOOR)
    return float(whole_steps * step_dec)


def calculate_lot_size(account_balance: float,
                       risk_percent: float,
                       stop_loss_pips: float,
                       specification: SymbolSpecification) -> float:
    """
    Deterministic, broker-compliant lot size calculation.

    Args:
        account_balance (float): Current account balance.
        risk_percent (float): Desired risk in percent (e.g., 1.0 for 1%).
        stop_loss_pips (float): Stop loss distance in pips (`point` units).
        specification (SymbolSpecification): Contract size, point, min volume and step.

    Returns:
        float: Volume floored to the volume step, never below the minimum
               volume, rounded to 2 decimals.

    Raises:
        ValueError: On a non-positive stop distance, pip value or volume step.
    """
    if stop_loss_pips <= 0:
        raise ValueError(f"stop_loss_pips must be positive, got {stop_loss_pips}")
    if specification.volume_step <= 0:
        raise ValueError("volume_step must be positive")

    pip_value = Decimal(str(specification.contract_size)) * Decimal(str(specification.point))
    if pip_value <= 0:
        raise ValueError(f"pip value must be positive for {specification.symbol}")

    risk_amount = Decimal(str(account_balance)) * Decimal(str(risk_percent)) / Decimal(100)
    raw_volume = risk_amount / (Decimal(str(stop_loss_pips)) * pip_value)

    stepped = Decimal(str(round_to_step(float(raw_volume), specification.volume_step)))
    volume = max(Decimal(str(specification.min_volume)), stepped)

    logger.debug(f"Lot sizing {specification.symbol}: risk={risk_amount}, pip_value={pip_value}, "
                 f"raw={raw_volume}, volume={volume}")
    return float(volume.quantize(LOT_PRECISION, rounding=ROUND_HALF_UP))


def safe_comment(comment: str) -> str:
    """Order comments must be printable ASCII and at most 31 characters."""
    if not comment:
        return ""
    return RE_NON_PRINTABLE.sub("", str(comment))[:MAX_COMMENT_LENGTH]
