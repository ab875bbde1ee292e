from __future__ import annotations

import asyncio

import pytest

from fakes import FakeAccount, FakeMetaApi, FakeRpcConnection
from fxbridge import (
    DataFetchError,
    MetaApiBrokerGateway,
    MetaApiConnector,
    OrderRejected,
    PositionSnapshot,
    TradeRequest,
)


def _gateway(connection: FakeRpcConnection | None = None) -> tuple[MetaApiBrokerGateway, FakeRpcConnection]:
    account = FakeAccount(connection=connection)
    connector = MetaApiConnector(FakeMetaApi(account), "acc-1")
    return MetaApiBrokerGateway(connector), account.connection


def _request(action: str = "buy", **overrides) -> TradeRequest:
    values = dict(symbol="EURUSD", action=action, lot_size=0.5, stop_loss_pips=20,
                  take_profit_pips=40, magic_number=18012025, comment="Gemini buy @ EURUSD")
    values.update(overrides)
    return TradeRequest(**values)


def test_buy_order_protects_below_and_above_the_ask() -> None:
    gateway, connection = _gateway()

    result = asyncio.run(gateway.submit_order(_request("buy")))

    side, symbol, volume, stop_loss, take_profit, options = connection.orders[0]
    assert (side, symbol, volume) == ("buy", "EURUSD", 0.5)
    assert stop_loss == pytest.approx(1.0982)
    assert take_profit == pytest.approx(1.1042)
    assert options == {"magic": 18012025, "comment": "Gemini buy @ EURUSD", "slippage": 10}
    assert result.numeric_code == 10009
    assert result.trade_id == "46870472"


def test_sell_order_inverts_protective_levels_around_the_bid() -> None:
    gateway, connection = _gateway()

    asyncio.run(gateway.submit_order(_request("sell", comment=None)))

    side, _, _, stop_loss, take_profit, options = connection.orders[0]
    assert side == "sell"
    assert stop_loss == pytest.approx(1.1020)
    assert take_profit == pytest.approx(1.0960)
    assert options["comment"] == "Gemini AI trade"


def test_non_success_code_is_rejected_with_broker_details() -> None:
    connection = FakeRpcConnection(trade_response={
        "numericCode": 10006,
        "stringCode": "TRADE_RETCODE_REJECT",
        "message": "Request rejected",
    })
    gateway, _ = _gateway(connection)

    with pytest.raises(OrderRejected) as excinfo:
        asyncio.run(gateway.submit_order(_request()))

    assert excinfo.value.numeric_code == 10006
    assert excinfo.value.string_code == "TRADE_RETCODE_REJECT"
    assert "Request rejected" in str(excinfo.value)


@pytest.mark.parametrize("code", [0, 10008, 10010, 10025])
def test_all_success_codes_are_accepted(code) -> None:
    connection = FakeRpcConnection(trade_response={"numericCode": code, "positionId": 991})
    gateway, _ = _gateway(connection)

    result = asyncio.run(gateway.submit_order(_request()))

    assert result.numeric_code == code
    assert result.trade_id == "991"


def test_sdk_trade_exception_becomes_order_rejected() -> None:
    class TradeException(Exception):
        def __init__(self, message):
            super().__init__(message)
            self.numeric_code = 10019
            self.string_code = "TRADE_RETCODE_NO_MONEY"

    gateway, _ = _gateway(FakeRpcConnection(trade_error=TradeException("No money")))

    with pytest.raises(OrderRejected) as excinfo:
        asyncio.run(gateway.submit_order(_request()))

    assert excinfo.value.numeric_code == 10019
    assert excinfo.value.string_code == "TRADE_RETCODE_NO_MONEY"


def test_other_sdk_exceptions_propagate_unchanged() -> None:
    gateway, _ = _gateway(FakeRpcConnection(trade_error=ConnectionError("socket closed")))

    with pytest.raises(ConnectionError):
        asyncio.run(gateway.submit_order(_request()))


def test_specification_is_cached_per_session() -> None:
    gateway, connection = _gateway()

    async def scenario():
        first = await gateway.get_symbol_specification("EURUSD")
        second = await gateway.get_symbol_specification("EURUSD")
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert connection.spec_calls == 1
    assert first.contract_size == 100000
    assert first.point == 0.0001


def test_specification_defaults_fill_missing_fields() -> None:
    gateway, _ = _gateway(FakeRpcConnection(specifications={"GBPJPY": {"digits": 3}}))

    spec = asyncio.run(gateway.get_symbol_specification("GBPJPY"))

    assert spec.contract_size == 100000
    assert spec.point == pytest.approx(0.001)
    assert spec.digits == 3
    assert spec.min_volume == 0.01
    assert spec.volume_step == 0.01


def test_specification_defaults_without_digits() -> None:
    gateway, _ = _gateway(FakeRpcConnection(specifications={"XAUUSD": {"symbol": "XAUUSD"}}))

    spec = asyncio.run(gateway.get_symbol_specification("XAUUSD"))

    assert spec.point == pytest.approx(0.0001)
    assert spec.digits == 5


def test_unknown_symbol_raises_data_fetch_error() -> None:
    gateway, _ = _gateway()

    with pytest.raises(DataFetchError, match="USDXYZ"):
        asyncio.run(gateway.get_symbol_specification("USDXYZ"))


def test_missing_price_raises_data_fetch_error() -> None:
    gateway, _ = _gateway(FakeRpcConnection(prices={}))

    with pytest.raises(DataFetchError):
        asyncio.run(gateway.get_price("EURUSD"))


def test_account_and_positions_are_mapped_to_domain_models() -> None:
    connection = FakeRpcConnection(positions=[
        {"id": 101, "symbol": "EURUSD", "type": "POSITION_TYPE_BUY", "volume": 0.2,
         "openPrice": 1.095, "currentPrice": 1.1, "profit": 10.0, "unrealizedProfit": 10.0,
         "comment": "Gemini buy @ EURUSD"},
        {"id": "102", "symbol": "GBPUSD", "type": "POSITION_TYPE_SELL", "volume": 0.1,
         "openPrice": 1.27},
    ])
    gateway, _ = _gateway(connection)

    async def scenario():
        return await gateway.get_account_snapshot(), await gateway.get_open_positions()

    account, positions = asyncio.run(scenario())

    assert account.balance == 10000.0
    assert account.free_margin == 9930.0
    assert account.leverage == 100
    assert positions == [
        PositionSnapshot(id="101", symbol="EURUSD", type="buy", volume=0.2, price=1.1,
                         profit=10.0, unrealized_profit=10.0, comment="Gemini buy @ EURUSD"),
        PositionSnapshot(id="102", symbol="GBPUSD", type="sell", volume=0.1, price=1.27),
    ]


def test_lot_size_uses_live_balance_and_specification() -> None:
    gateway, connection = _gateway()

    assert asyncio.run(gateway.calculate_lot_size("EURUSD", 1.0, 20)) == 0.50
    assert connection.connect_calls == 1
