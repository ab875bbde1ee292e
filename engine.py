"""
engine.py
The core Trading Engine.
Connects market data, indicators, the signal advisor, position sizing and
the broker into one decision cycle with a fixed gating policy:

    fetch -> derive -> advise -> [hold?] -> [confidence?] -> size
          -> [auto execute?] -> execute

Each cycle is a single best-effort pass with exactly one outcome.
"""

import asyncio
import logging
from typing import Optional

from advisor import AdvisorContext, SignalAdvisor
from fxbridge import (
    AccountStatus,
    CycleResult,
    DataFetchError,
    IBrokerGateway,
    IMarketDataSource,
    StrategySettings,
    TradeRequest,
    TradeResult,
    TradingError,
    build_indicator_snapshot,
    calculate_lot_size
)

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.55

SKIP_HOLD = "AI recommended hold"
SKIP_LOW_CONFIDENCE = "confidence below threshold"
SKIP_INVALID_STOP = "invalid stop/target distance"
SKIP_AUTO_EXECUTION = "auto execution disabled"


async def gather_or_cancel(*aws):
    """Like asyncio.gather, but cancels the remaining awaitables on the first failure."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


class StrategyEngine:
    """
    The engine that orchestrates data flow, the advisor call and trade execution.
    All collaborators are injected; the engine holds no connection state.
    """

    def __init__(self,
                 market_data: IMarketDataSource,
                 broker: IBrokerGateway,
                 advisor: SignalAdvisor,
                 candle_interval: str = "5min",
                 candle_size: str = "compact"):
        self._market_data = market_data
        self._broker = broker
        self._advisor = advisor
        self._candle_interval = candle_interval
        self._candle_size = candle_size

    async def run_cycle(self, settings: StrategySettings, auto_execute: bool = False) -> CycleResult:
        """Executes one full decision cycle."""
        symbol = settings.symbol
        logger.info(f"--- Cycle start: {symbol} {settings.timeframe} (auto execute: {auto_execute}) ---")

        # 1. Fetch
        try:
            candles, account = await gather_or_cancel(
                self._market_data.fetch(symbol, self._candle_interval, self._candle_size),
                self._broker.get_account_snapshot(),
            )
        except TradingError as e:
            e.stage = e.stage or "fetch"
            raise
        except Exception as e:
            raise DataFetchError(f"Failed to fetch market data or account: {e}", stage="fetch") from e

        # 2. Derive
        indicators = build_indicator_snapshot(candles)
        logger.info(f"Indicators for {symbol}: {indicators}")

        # 3. Advise
        signal = await self._advisor.advise(AdvisorContext(
            symbol=symbol,
            timeframe=settings.timeframe,
            candles=tuple(candles),
            indicators=indicators,
            account=account,
            risk_profile=settings.risk_profile,
        ))

        # 4. Gate: action
        if signal.action == "hold":
            return self._skip(signal, SKIP_HOLD)

        # 5. Gate: confidence
        if signal.confidence < CONFIDENCE_THRESHOLD:
            return self._skip(signal, SKIP_LOW_CONFIDENCE)

        # Both protective levels are required to place an order
        if signal.stop_loss_pips <= 0 or signal.take_profit_pips <= 0:
            return self._skip(signal, SKIP_INVALID_STOP)

        # 6. Size
        try:
            specification = await self._broker.get_symbol_specification(symbol)
        except TradingError as e:
            e.stage = e.stage or "size"
            raise
        except Exception as e:
            raise DataFetchError(f"Failed to load specification for {symbol}: {e}", stage="size") from e
        lot_size = calculate_lot_size(
            account_balance=account.balance,
            risk_percent=settings.risk_profile.risk_per_trade,
            stop_loss_pips=signal.stop_loss_pips,
            specification=specification,
        )
        logger.info(f"Sized {signal.action} {symbol}: {lot_size} lots "
                    f"(risk {settings.risk_profile.risk_per_trade}%, SL {signal.stop_loss_pips} pips)")

        # 7. Gate: auto execution
        if not auto_execute:
            return self._skip(signal, SKIP_AUTO_EXECUTION, lot_size=lot_size)

        # 8. Execute
        request = TradeRequest(
            symbol=symbol,
            action=signal.action,
            lot_size=lot_size,
            stop_loss_pips=signal.stop_loss_pips,
            take_profit_pips=signal.take_profit_pips,
            magic_number=settings.magic_number,
            comment=f"Gemini {signal.action} @ {symbol}",
        )
        result = await self._submit(request)

        logger.info(f"--- EXECUTED {signal.action.upper()} {symbol} @ {lot_size} lots, trade id {result.trade_id} ---")
        return CycleResult(signal=signal, lot_size=lot_size, executed_trade_id=result.trade_id)

    async def execute_trade(self, request: TradeRequest) -> TradeResult:
        """Submits a caller-built order directly, bypassing the advisor."""
        logger.info(f"--- Manual {request.action.upper()} {request.symbol} @ {request.lot_size} lots ---")
        return await self._submit(request)

    async def get_status(self) -> AccountStatus:
        """Account snapshot and open positions, fetched concurrently."""
        try:
            account, positions = await gather_or_cancel(
                self._broker.get_account_snapshot(),
                self._broker.get_open_positions(),
            )
        except TradingError as e:
            e.stage = e.stage or "fetch"
            raise
        except Exception as e:
            raise DataFetchError(f"Failed to load account status: {e}", stage="fetch") from e
        return AccountStatus(account=account, positions=tuple(positions))

    async def _submit(self, request: TradeRequest) -> TradeResult:
        # Shielded: a started submission runs to completion even if the caller goes away
        try:
            return await asyncio.shield(self._broker.submit_order(request))
        except TradingError as e:
            e.stage = e.stage or "execute"
            logger.error(f"Order for {request.symbol} failed: {e}")
            raise

    @staticmethod
    def _skip(signal, reason: str, lot_size: Optional[float] = None) -> CycleResult:
        logger.info(f"Cycle skipped: {reason} (action={signal.action}, confidence={signal.confidence:.2f})")
        return CycleResult(signal=signal, lot_size=lot_size, skipped_reason=reason)
