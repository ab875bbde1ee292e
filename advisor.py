"""
advisor.py
The signal advisor: serializes one market context into a JSON request for
the reasoning model and turns its answer into a `TradeSignal`.

Unreadable output never raises. It becomes the hold fallback signal so the
engine's gating degrades gracefully, and it is never re-requested.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from fxbridge import (
    AccountSnapshot,
    Candle,
    IndicatorSnapshot,
    RiskProfile,
    TradeSignal
)
from fxbridge.domain import SIGNAL_ACTIONS
from llm_client import ILLMClient

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = """
You are an expert FX trading assistant.
You must:
- Analyse the provided market data and indicators.
- Produce a clear recommendation: buy, sell, or hold.
- Provide confidence metrics between 0 and 1.
- Suggest stop loss and take profit levels in pips.
- Highlight risks and justifications.

Return JSON with the following shape:
{
  "action": "buy" | "sell" | "hold",
  "confidence": number,
  "stopLossPips": number,
  "takeProfitPips": number,
  "rationale": string,
  "riskFactors": string[]
}
"""

RE_JSON_FENCE_OBJ = re.compile(r"(?is)```(?:json)?\s*(\{.*\})\s*```")
RE_INVISIBLE = re.compile(r'[\u200B\u200C\u200D\uFEFF]')


@dataclass(frozen=True)
class AdvisorContext:
    """Everything the model sees for one decision."""
    symbol: str
    timeframe: str
    candles: Sequence[Candle]
    indicators: IndicatorSnapshot
    account: AccountSnapshot
    risk_profile: RiskProfile

    def to_payload(self) -> Dict[str, Any]:
        ind = self.indicators
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "candles": [
                {
                    "time": c.time.isoformat(),
                    "open": c.open,
                    "high": c.high,
                    "low": c.low,
                    "close": c.close,
                    "volume": c.volume,
                }
                for c in self.candles
            ],
            "indicators": {
                "sma20": ind.sma20,
                "sma50": ind.sma50,
                "ema12": ind.ema12,
                "ema26": ind.ema26,
                "rsi14": ind.rsi14,
                "atr14": ind.atr14,
                "maxHigh": ind.max_high20,
                "minLow": ind.min_low20,
            },
            "account": {
                "equity": self.account.equity,
                "balance": self.account.balance,
                "leverage": self.account.leverage,
                "freeMargin": self.account.free_margin,
            },
            "riskProfile": {
                "riskPerTrade": self.risk_profile.risk_per_trade,
                "maxConcurrentTrades": self.risk_profile.max_concurrent_trades,
                "maxDrawdown": self.risk_profile.max_drawdown,
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload())


def _clean_json_str(s: str) -> str:
    """Cleans common LLM JSON errors."""
    s = RE_INVISIBLE.sub("", s)
    s = s.replace('\u201c', '"').replace('\u201d', '"')
    s = s.replace('\uff5b', '{').replace('\uff5d', '}')
    s = s.replace('\uff1a', ':').replace('\uff0c', ',')
    return s


def _as_number(value: Any) -> float:
    # JSON numbers only; "0.9" as a string is malformed
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"not a JSON number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite number: {value!r}")
    return number


def _risk_factors(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]


def parse_signal(raw: str) -> TradeSignal:
    """
    Parses the model's answer. Anything that is not a JSON object with a
    valid action and a numeric confidence in [0, 1] yields the fallback.
    """
    text = _clean_json_str(raw or "").strip()
    fenced = RE_JSON_FENCE_OBJ.search(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Advisor output is not JSON ({e}); falling back to hold.")
        return TradeSignal.fallback()

    if not isinstance(data, dict) or data.get("action") not in SIGNAL_ACTIONS:
        logger.warning(f"Advisor output has no valid action: {str(data)[:200]}")
        return TradeSignal.fallback()

    try:
        confidence = _as_number(data.get("confidence"))
        stop_loss_pips = _as_number(data.get("stopLossPips") or 0)
        take_profit_pips = _as_number(data.get("takeProfitPips") or 0)
    except (TypeError, ValueError) as e:
        logger.warning(f"Advisor output has invalid numeric fields ({e}); falling back to hold.")
        return TradeSignal.fallback()

    if not 0 <= confidence <= 1:
        logger.warning(f"Advisor confidence {confidence} outside [0, 1]; falling back to hold.")
        return TradeSignal.fallback()

    return TradeSignal(
        action=data["action"],
        confidence=confidence,
        stop_loss_pips=stop_loss_pips,
        take_profit_pips=take_profit_pips,
        rationale=str(data.get("rationale") or ""),
        risk_factors=tuple(_risk_factors(data.get("riskFactors")))
    )


class SignalAdvisor:
    """Asks the reasoning model for exactly one trade signal per context."""

    def __init__(self, llm_client: ILLMClient, system_instruction: str = SYSTEM_INSTRUCTION):
        self._llm = llm_client
        self._system_instruction = system_instruction

    async def advise(self, context: AdvisorContext) -> TradeSignal:
        logger.info(f"Requesting signal for {context.symbol} ({context.timeframe}, {len(context.candles)} candles)")
        raw_response = await self._llm.call(self._system_instruction, context.to_json())

        signal = parse_signal(raw_response)
        logger.info(f"Advisor signal: {signal.action} (confidence {signal.confidence:.2f}) - {signal.rationale[:120]}")
        return signal
