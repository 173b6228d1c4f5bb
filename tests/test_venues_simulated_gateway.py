"""
Tests for SimulatedGateway: order placement, fill-on-refresh, quotes and
close-out against a small in-memory series.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from slope_trader.backtesting.clock import SimulatedClock
from slope_trader.data.history import HistoricalSeries
from slope_trader.execution.fill_simulator import AlwaysFillPolicy, OrderFillSimulator
from slope_trader.execution.ledger import PortfolioLedger
from slope_trader.execution.orders import (
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    UnknownOrderError,
)
from slope_trader.utils.time import MARKET_TIMEZONE
from slope_trader.venues.simulated_gateway import SimulatedGateway


def ny(*args) -> datetime:
    return datetime(*args, tzinfo=MARKET_TIMEZONE)


@pytest.fixture
def gateway():
    records = [
        ["2024-01-03 09:30:00", "100", "100.5", "99.5", "100"],
        ["2024-01-03 09:31:00", "101", "101.5", "100.5", "101"],
        ["2024-01-03 09:32:00", "102", "102.5", "101.5", "102"],
    ]
    series = HistoricalSeries.load(records, start_time=ny(2024, 1, 3, 9, 30))
    clock = SimulatedClock(ny(2024, 1, 3, 9, 30), timedelta(minutes=1))
    clock.advance()
    ledger = PortfolioLedger(Decimal(100000))
    return SimulatedGateway(series, clock, ledger, OrderFillSimulator(AlwaysFillPolicy(), ledger))


def buy_request() -> OrderRequest:
    return OrderRequest(symbol="SPY", side=OrderSide.BUY, quantity=Decimal(10))


def test_place_order_assigns_sequential_ids(gateway):
    first = gateway.place_order(buy_request())
    second = gateway.place_order(buy_request())

    assert (first.id, second.id) == ("1", "2")
    assert first.status == OrderStatus.NEW
    assert first.created_at == ny(2024, 1, 3, 9, 30)
    assert gateway.orders_created == 2

    gateway.reset_order_ids()
    assert gateway.orders_created == 0


def test_sell_request_becomes_limit_bracket(gateway):
    order = gateway.place_order(
        OrderRequest(
            symbol="SPY",
            side=OrderSide.SELL,
            quantity=Decimal(10),
            order_type=OrderType.LIMIT,
            take_profit_limit_price=Decimal("101"),
            stop_loss_stop_price=Decimal("98"),
            stop_loss_limit_price=Decimal("97.5"),
        )
    )

    assert order.order_type == OrderType.LIMIT
    assert order.limit_price == Decimal("101")
    assert order.stop_price == Decimal("98")
    assert order.stop_limit_price == Decimal("97.5")


def test_get_order_fills_against_current_minute(gateway):
    order = gateway.place_order(buy_request())
    gateway.clock.advance()  # 09:31

    refreshed = gateway.get_order(order.id)

    assert refreshed.status == OrderStatus.FILLED
    assert refreshed.filled_avg_price == Decimal("101.5")
    assert gateway.get_account().cash == Decimal(100000) - Decimal("1015.0")


def test_get_order_unknown_id(gateway):
    with pytest.raises(UnknownOrderError):
        gateway.get_order("42")


def test_cancel_is_a_no_op(gateway):
    order = gateway.place_order(buy_request())

    gateway.cancel_order(order.id)

    assert gateway.get_order(order.id).status == OrderStatus.FILLED


def test_recent_bars_end_at_now(gateway):
    gateway.clock.advance()
    gateway.clock.advance()  # 09:32

    bars = gateway.get_recent_bars("SPY", 3)

    assert [b.close_price for b in bars] == [Decimal("100"), Decimal("101"), Decimal("102")]
    assert gateway.now() == ny(2024, 1, 3, 9, 32)


def test_close_out_liquidates_at_low_and_forgets_orders(gateway):
    order = gateway.place_order(buy_request())
    gateway.get_order(order.id)  # fills at 100.5
    gateway.clock.advance()  # 09:31, low 100.5

    gateway.close_out_trading()

    assert gateway.ledger.shares_held == 0
    assert gateway.ledger.cash == Decimal(100000)
    with pytest.raises(UnknownOrderError):
        gateway.get_order(order.id)
