from __future__ import annotations

import asyncio
import json

import pytest

from advisor import SYSTEM_INSTRUCTION, AdvisorContext, SignalAdvisor, parse_signal
from fakes import FakeLLM, make_candles, signal_json
from fxbridge import AccountSnapshot, RiskProfile, TradeSignal, build_indicator_snapshot


def _context() -> AdvisorContext:
    candles = make_candles([1.1 + i * 0.0001 for i in range(60)])
    return AdvisorContext(
        symbol="EURUSD",
        timeframe="M5",
        candles=tuple(candles),
        indicators=build_indicator_snapshot(candles),
        account=AccountSnapshot(balance=10000, equity=10100, margin=50, free_margin=10050,
                                leverage=100, currency="USD"),
        risk_profile=RiskProfile(risk_per_trade=1.0),
    )


def test_parses_a_well_formed_signal() -> None:
    signal = parse_signal(signal_json(action="sell", confidence=0.72))

    assert signal == TradeSignal(
        action="sell",
        confidence=0.72,
        stop_loss_pips=20.0,
        take_profit_pips=40.0,
        rationale="trend continuation",
        risk_factors=("news at 14:30",),
    )


def test_accepts_json_wrapped_in_a_code_fence() -> None:
    raw = "Here you go:\n```json\n" + signal_json(action="hold", confidence=0.3) + "\n```"

    assert parse_signal(raw).action == "hold"


@pytest.mark.parametrize("raw", [
    "I think you should buy EURUSD.",
    "",
    json.dumps({"confidence": 0.9, "stopLossPips": 20}),
    signal_json(action="close"),
    signal_json(confidence="high"),
    signal_json(confidence=True),
    signal_json(confidence=85),
    signal_json(confidence="0.9"),
    signal_json(stopLossPips="20"),
    json.dumps([{"action": "buy", "confidence": 0.9}]),
])
def test_malformed_output_yields_the_exact_fallback(raw) -> None:
    signal = parse_signal(raw)

    assert signal == TradeSignal.fallback()
    assert signal.action == "hold"
    assert signal.confidence == 0
    assert signal.stop_loss_pips == 0
    assert signal.take_profit_pips == 0
    assert signal.rationale == "parse failure"
    assert signal.risk_factors == ("advisor output unreadable",)


def test_missing_pip_fields_default_to_zero() -> None:
    signal = parse_signal(json.dumps({"action": "buy", "confidence": 0.6}))

    assert signal.stop_loss_pips == 0.0
    assert signal.take_profit_pips == 0.0
    assert signal.risk_factors == ()


def test_advise_sends_context_once_with_fixed_instruction() -> None:
    llm = FakeLLM("not json at all")
    advisor = SignalAdvisor(llm)

    signal = asyncio.run(advisor.advise(_context()))

    assert signal == TradeSignal.fallback()
    assert len(llm.calls) == 1
    system, user = llm.calls[0]
    assert system == SYSTEM_INSTRUCTION
    payload = json.loads(user)
    assert payload["symbol"] == "EURUSD"
    assert payload["timeframe"] == "M5"
    assert len(payload["candles"]) == 60
    assert set(payload["indicators"]) == {"sma20", "sma50", "ema12", "ema26", "rsi14", "atr14", "maxHigh", "minLow"}
    assert payload["account"]["freeMargin"] == 10050
    assert payload["riskProfile"] == {"riskPerTrade": 1.0, "maxConcurrentTrades": 3, "maxDrawdown": 10.0}


def test_transport_errors_are_not_converted_to_fallback() -> None:
    class BrokenLLM:
        async def call(self, system: str, user: str) -> str:
            raise RuntimeError("provider unavailable")

    with pytest.raises(RuntimeError, match="provider unavailable"):
        asyncio.run(SignalAdvisor(BrokenLLM()).advise(_context()))
