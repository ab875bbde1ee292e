"""
MetaApi Broker Gateway
----------------------

This file contains the concrete implementation of the `IBrokerGateway`
port.

It depends on a `MetaApiConnector` for a synchronized RPC connection and
is responsible for translating the application's requests into MetaApi
calls and mapping the results back to the application's domain models.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .connector import MetaApiConnector
from .domain import (
    AccountSnapshot,
    PositionSnapshot,
    PriceQuote,
    SymbolSpecification,
    TradeRequest,
    TradeResult
)
from .errors import DataFetchError, OrderRejected
from .ports import IBrokerGateway
from .utils import calculate_lot_size, safe_comment

logger = logging.getLogger(__name__)

# 0 = no error, 10008 = order placed, 10009 = request done,
# 10010 = done partially, 10025 = no changes
SUCCESS_CODES = frozenset({0, 10008, 10009, 10010, 10025})

DEFAULT_COMMENT = "Gemini AI trade"


class MetaApiBrokerGateway(IBrokerGateway):
    """
    Read/query/execute primitives on top of one MetaApi session.
    Symbol specifications are cached per symbol for the life of a connection.
    """

    def __init__(self,
                 connector: MetaApiConnector,
                 slippage: int = 10):
        self._connector = connector
        self._slippage = slippage
        self._spec_cache: Dict[str, SymbolSpecification] = {}
        self._cache_connection: Optional[Any] = None

    async def _connection(self) -> Any:
        connection = await self._connector.connect()
        if connection is not self._cache_connection:
            # New session: cached specifications belong to the old one
            self._spec_cache.clear()
            self._cache_connection = connection
        return connection

    async def get_account_snapshot(self) -> AccountSnapshot:
        """Fetches the current account state."""
        connection = await self._connection()
        raw = await connection.get_account_information()
        if not raw:
            raise DataFetchError("MetaApi returned no account information.")

        return AccountSnapshot(
            balance=float(raw["balance"]),
            equity=float(raw["equity"]),
            margin=float(raw.get("margin", 0.0)),
            free_margin=float(raw.get("freeMargin", 0.0)),
            leverage=int(raw.get("leverage", 0)),
            currency=str(raw.get("currency", "USD"))
        )

    async def get_open_positions(self) -> List[PositionSnapshot]:
        """Fetches all currently open positions."""
        connection = await self._connection()
        raw_positions = await connection.get_positions() or []

        positions = []
        for pos in raw_positions:
            current_price = pos.get("currentPrice")
            positions.append(PositionSnapshot(
                id=str(pos["id"]),
                symbol=str(pos["symbol"]),
                type="buy" if pos.get("type") == "POSITION_TYPE_BUY" else "sell",
                volume=float(pos["volume"]),
                price=float(current_price if current_price is not None else pos.get("openPrice", 0.0)),
                profit=float(pos.get("profit") or 0.0),
                unrealized_profit=float(pos.get("unrealizedProfit") or 0.0),
                comment=pos.get("comment") or None
            ))
        return positions

    async def get_symbol_specification(self, symbol: str) -> SymbolSpecification:
        """Fetches and normalizes the symbol specification (cached per session)."""
        connection = await self._connection()
        cached = self._spec_cache.get(symbol)
        if cached is not None:
            return cached

        raw = await connection.get_symbol_specification(symbol)
        if not raw:
            raise DataFetchError(f"Unable to load specification for symbol {symbol}")

        digits = raw.get("digits")
        point = raw.get("point")
        if point is None:
            point = 10 ** -(digits if digits is not None else 4)

        spec = SymbolSpecification(
            symbol=symbol,
            contract_size=float(raw.get("contractSize") or 100_000),
            point=float(point),
            digits=int(digits if digits is not None else 5),
            min_volume=float(raw.get("minVolume") or 0.01),
            volume_step=float(raw.get("volumeStep") or 0.01)
        )
        self._spec_cache[symbol] = spec
        return spec

    async def get_price(self, symbol: str) -> PriceQuote:
        """Returns the latest bid/ask for the given symbol."""
        connection = await self._connection()
        raw = await connection.get_symbol_price(symbol)
        if not raw:
            raise DataFetchError(f"Unable to load price for symbol {symbol}")
        return PriceQuote(symbol=symbol, bid=float(raw["bid"]), ask=float(raw["ask"]))

    async def calculate_lot_size(self, symbol: str, risk_percent: float, stop_loss_pips: float) -> float:
        """Sizes a position from the live balance and the symbol specification."""
        account, spec = await asyncio.gather(
            self.get_account_snapshot(),
            self.get_symbol_specification(symbol)
        )
        return calculate_lot_size(account.balance, risk_percent, stop_loss_pips, spec)

    async def submit_order(self, request: TradeRequest) -> TradeResult:
        """
        Places a market order. SL/TP prices are derived from the pip
        distances and the symbol point: below/above entry for a buy,
        inverted for a sell.
        """
        connection = await self._connection()
        spec = await self.get_symbol_specification(request.symbol)
        quote = await self.get_price(request.symbol)

        stop_loss, take_profit = self._protective_prices(request, spec, quote)
        options = {
            "magic": request.magic_number,
            "comment": safe_comment(request.comment) or DEFAULT_COMMENT,
            "slippage": self._slippage,
        }

        if request.action == "buy":
            place = connection.create_market_buy_order
        else:
            place = connection.create_market_sell_order

        logger.info(f"Sending {request.action} order: {request.symbol} {request.lot_size} lots, "
                    f"SL={stop_loss}, TP={take_profit}, options={options}")
        try:
            raw = await place(request.symbol, request.lot_size, stop_loss, take_profit, options)
        except Exception as exc:
            # The SDK raises trade errors carrying the broker's result code
            numeric_code = getattr(exc, "numeric_code", None)
            if numeric_code is None:
                raise
            raise OrderRejected(numeric_code, getattr(exc, "string_code", None), str(exc)) from exc

        return self._parse_result(raw)

    @staticmethod
    def _protective_prices(request: TradeRequest,
                           spec: SymbolSpecification,
                           quote: PriceQuote):
        price = quote.ask if request.action == "buy" else quote.bid
        sl_distance = request.stop_loss_pips * spec.point
        tp_distance = request.take_profit_pips * spec.point

        if request.action == "buy":
            stop_loss, take_profit = price - sl_distance, price + tp_distance
        else:
            stop_loss, take_profit = price + sl_distance, price - tp_distance

        return round(stop_loss, spec.digits), round(take_profit, spec.digits)

    def _parse_result(self, raw: Any) -> TradeResult:
        """Maps the MetaApi trade response, rejecting non-success codes."""
        if not raw:
            raise OrderRejected(None, None, "MetaApi returned an empty trade response")

        numeric_code = raw.get("numericCode")
        string_code = raw.get("stringCode")
        message = raw.get("message")

        if numeric_code not in SUCCESS_CODES:
            logger.error(f"Order failed, code: {numeric_code} ({string_code}), message: {message}")
            raise OrderRejected(numeric_code, string_code, message)

        order_id = raw.get("orderId")
        position_id = raw.get("positionId")
        result = TradeResult(
            numeric_code=numeric_code,
            string_code=string_code,
            message=message,
            order_id=str(order_id) if order_id is not None else None,
            position_id=str(position_id) if position_id is not None else None
        )
        logger.info(f"Order success, code: {numeric_code}, trade id: {result.trade_id}, message: {message}")
        return result
