"""
Tests for the order and position model.
"""

from datetime import datetime
from decimal import Decimal

from slope_trader.execution.orders import (
    ENDED_UNSUCCESSFULLY_STATES,
    IN_PROGRESS_STATES,
    ORDER_COMPLETED_STATES,
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
)
from slope_trader.utils.time import MARKET_TIMEZONE

T0 = datetime(2024, 1, 3, 10, 0, tzinfo=MARKET_TIMEZONE)


def make_order(order_id: str, side: OrderSide, status: OrderStatus = OrderStatus.NEW) -> Order:
    return Order(
        id=order_id,
        symbol="SPY",
        side=side,
        quantity=Decimal(10),
        order_type=OrderType.MARKET if side == OrderSide.BUY else OrderType.LIMIT,
        created_at=T0,
        status=status,
    )


def test_status_sets():
    assert OrderStatus.FILLED in ORDER_COMPLETED_STATES
    assert OrderStatus.FILLED not in ENDED_UNSUCCESSFULLY_STATES
    assert OrderStatus.CANCELED in ENDED_UNSUCCESSFULLY_STATES
    assert OrderStatus.NEW in IN_PROGRESS_STATES
    assert not IN_PROGRESS_STATES & ORDER_COMPLETED_STATES


def test_order_request_is_oco_only_with_bracket_prices():
    buy = OrderRequest(symbol="SPY", side=OrderSide.BUY, quantity=Decimal(10))
    sell = OrderRequest(
        symbol="SPY",
        side=OrderSide.SELL,
        quantity=Decimal(10),
        order_type=OrderType.LIMIT,
        take_profit_limit_price=Decimal("101"),
        stop_loss_stop_price=Decimal("98"),
    )

    assert not buy.is_oco
    assert sell.is_oco


def test_mark_filled():
    order = make_order("1", OrderSide.BUY)
    assert not order.is_filled

    order.mark_filled(Decimal("102.5"), Decimal(10), T0)

    assert order.is_filled
    assert order.filled_avg_price == Decimal("102.5")
    assert order.filled_qty == Decimal(10)
    assert order.filled_at == T0


def test_new_position_is_open_and_buying():
    position = Position(buy_order=make_order("1", OrderSide.BUY))

    assert position.buy_in_progress()
    assert position.in_progress_buy_order()
    assert not position.buy_filled()
    assert position.not_selling()
    assert position.open_and_unsold()
    assert not position.in_progress_sell_order()


def test_filled_buy_without_sell_needs_a_sell():
    position = Position(buy_order=make_order("1", OrderSide.BUY, OrderStatus.FILLED))

    assert position.buy_filled()
    assert position.buy_has_status(OrderStatus.FILLED)
    assert position.not_selling()
    assert not position.in_progress_buy_order()


def test_working_sell():
    position = Position(
        buy_order=make_order("1", OrderSide.BUY, OrderStatus.FILLED),
        sell_order=make_order("2", OrderSide.SELL),
    )

    assert not position.not_selling()
    assert position.sell_in_progress()
    assert position.in_progress_sell_order()
    assert position.open_and_unsold()


def test_sold_position_is_closed():
    position = Position(
        buy_order=make_order("1", OrderSide.BUY, OrderStatus.FILLED),
        sell_order=make_order("2", OrderSide.SELL, OrderStatus.FILLED),
    )

    assert position.sell_filled()
    assert position.sell_has_status(OrderStatus.FILLED)
    assert not position.open_and_unsold()
    assert not position.not_selling()


def test_canceled_sell_means_not_selling_again():
    position = Position(
        buy_order=make_order("1", OrderSide.BUY, OrderStatus.FILLED),
        sell_order=make_order("2", OrderSide.SELL, OrderStatus.CANCELED),
    )

    assert position.not_selling()
    assert position.open_and_unsold()


def test_canceled_buy_does_not_count_as_open():
    position = Position(buy_order=make_order("1", OrderSide.BUY, OrderStatus.CANCELED))

    assert position.buy_ended_unsuccessfully()
    assert not position.open_and_unsold()
    assert not position.buy_in_progress()
