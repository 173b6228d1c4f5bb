"""
Tests for SlopeScalperStrategy decisions.

A small fake gateway stands in for the venue so each rule (history, cash,
slope, concurrency cap, sell bracket, stale cancel) can be tested on its own.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.orders import (
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
)
from slope_trader.storage.purchases import InMemoryPurchaseStore
from slope_trader.strategies.slope_scalper import SlopeScalperParams, SlopeScalperStrategy
from slope_trader.utils.time import MARKET_TIMEZONE
from slope_trader.venues.base import Account, GatewayError

NOW = datetime(2024, 1, 3, 10, 0, tzinfo=MARKET_TIMEZONE)


def bars_from_closes(*closes) -> list[PriceSample]:
    return [
        PriceSample(high_price=Decimal(str(c)) + Decimal("0.5"), low_price=Decimal(str(c)), close_price=Decimal(str(c)))
        for c in closes
    ]


class FakeGateway:
    def __init__(self, bars=None, cash=Decimal(100000)):
        self.bars = bars if bars is not None else bars_from_closes(100, 101, 102)
        self.cash = cash
        self.placed: list[OrderRequest] = []
        self.orders: dict[str, Order] = {}
        self.canceled: list[str] = []
        self.closed_out = False
        self.fail_get_order = False

    def now(self):
        return NOW

    def place_order(self, request):
        self.placed.append(request)
        order = Order(
            id=str(len(self.placed)),
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            order_type=request.order_type,
            created_at=NOW,
            limit_price=request.take_profit_limit_price,
            stop_price=request.stop_loss_stop_price,
            stop_limit_price=request.stop_loss_limit_price,
        )
        self.orders[order.id] = order
        return order

    def cancel_order(self, order_id):
        self.canceled.append(order_id)

    def get_order(self, order_id):
        if self.fail_get_order:
            raise GatewayError("venue unavailable")
        return self.orders[order_id]

    def get_recent_bars(self, symbol, count):
        return self.bars[-count:]

    def get_account(self):
        return Account(cash=self.cash)

    def close_out_trading(self):
        self.closed_out = True


def make_strategy(gateway=None, store=None, **overrides) -> SlopeScalperStrategy:
    params = SlopeScalperParams(min_slope_required_to_buy=1.0, **overrides)
    return SlopeScalperStrategy(gateway or FakeGateway(), params, store)


def filled_buy(order_id="1", price="102.5", created_at=NOW) -> Order:
    order = Order(
        id=order_id,
        symbol="SPY",
        side=OrderSide.BUY,
        quantity=Decimal(10),
        order_type=OrderType.MARKET,
        created_at=created_at,
    )
    order.mark_filled(Decimal(price), Decimal(10), created_at)
    return order


def test_buy_signal_fires_on_steep_slope():
    assert make_strategy().buy_signal(NOW)


def test_buy_places_market_order_and_stores_position():
    store = InMemoryPurchaseStore()
    gateway = FakeGateway()
    strategy = make_strategy(gateway, store)

    position = strategy.buy(NOW)

    assert position is not None
    assert gateway.placed[0].side == OrderSide.BUY
    assert gateway.placed[0].order_type == OrderType.MARKET
    assert gateway.placed[0].quantity == Decimal(10)
    assert strategy.positions == [position]
    assert store.list_purchases() == [position]


def test_insufficient_history_suppresses_buy():
    gateway = FakeGateway(bars=bars_from_closes(100, 101))
    strategy = make_strategy(gateway)

    assert not strategy.buy_signal(NOW)
    assert strategy.buy(NOW) is None
    assert gateway.placed == []


def test_flat_slope_suppresses_buy():
    strategy = make_strategy(FakeGateway(bars=bars_from_closes(5, 5, 5)))

    assert not strategy.buy_signal(NOW)


def test_insufficient_cash_suppresses_buy():
    # Needed: high 102.5 * 10 shares * 1.2 = 1230
    assert not make_strategy(FakeGateway(cash=Decimal("1229.99"))).buy_signal(NOW)
    assert make_strategy(FakeGateway(cash=Decimal("1230"))).buy_signal(NOW)


def test_sequential_increase_requirement():
    # Slope of [100, 103, 102.9] is 1.45, but the last close dips
    gateway = FakeGateway(bars=bars_from_closes(100, 103, 102.9))

    assert make_strategy(gateway).buy_signal(NOW)
    assert not make_strategy(gateway, all_sequential_increases_required=True).buy_signal(NOW)


def test_gateway_error_fails_closed():
    def unavailable(symbol, count):
        raise GatewayError("down")

    gateway = FakeGateway()
    gateway.get_recent_bars = unavailable

    assert not make_strategy(gateway).buy_signal(NOW)


def test_concurrency_cap_blocks_second_buy():
    gateway = FakeGateway()
    strategy = make_strategy(gateway, max_concurrent_purchases=1)

    assert strategy.buy(NOW) is not None
    assert strategy.buy(NOW) is None
    assert len(gateway.placed) == 1


def test_sold_positions_free_the_cap():
    gateway = FakeGateway()
    strategy = make_strategy(gateway, max_concurrent_purchases=1)
    position = strategy.buy(NOW)
    position.buy_order.status = OrderStatus.FILLED
    position.sell_order = filled_buy("9")  # any filled order stands in for the sold leg
    position.sell_order.side = OrderSide.SELL

    assert strategy.in_progress_purchases() == []
    assert strategy.buy(NOW) is not None


def test_sell_bracket_prices():
    strategy = make_strategy()

    take_profit, stop_price, stop_limit = strategy.sell_bracket(Decimal("102.5"))

    assert take_profit == Decimal("102.7050")
    assert stop_price == Decimal("102.3770")
    assert stop_limit == Decimal("102.32575")


def test_sell_places_oco_for_filled_buys():
    store = InMemoryPurchaseStore()
    gateway = FakeGateway()
    strategy = make_strategy(gateway, store)
    position = Position(buy_order=filled_buy())
    strategy.positions.append(position)
    store.insert(position)

    strategy.sell()

    request = gateway.placed[0]
    assert request.side == OrderSide.SELL
    assert request.is_oco
    assert request.time_in_force == "gtc"
    assert request.take_profit_limit_price == Decimal("102.705")
    assert position.sell_order is not None
    assert strategy.bought_not_selling() == []
    assert store.update_count == 1

    # A working sell is not placed twice
    strategy.sell()
    assert len(gateway.placed) == 1


def test_sell_skipped_without_fill_price():
    gateway = FakeGateway()
    strategy = make_strategy(gateway)
    buy = filled_buy()
    buy.filled_avg_price = None
    position = Position(buy_order=buy)

    assert strategy.place_sell_order(position) is None
    assert gateway.placed == []


def test_refresh_orders_updates_positions_and_store():
    store = InMemoryPurchaseStore()
    gateway = FakeGateway()
    strategy = make_strategy(gateway, store)
    position = strategy.buy(NOW)

    gateway.orders[position.buy_order.id] = filled_buy(position.buy_order.id)
    strategy.refresh_orders()

    assert position.buy_filled()
    assert store.update_count == 1


def test_refresh_survives_gateway_errors(caplog):
    gateway = FakeGateway()
    strategy = make_strategy(gateway)
    position = strategy.buy(NOW)
    gateway.fail_get_order = True

    strategy.refresh_orders()

    assert position.buy_order.status == OrderStatus.NEW
    assert "unable to refresh order" in caplog.text


def test_cancel_outdated_orders_only_cancels_stale_buys():
    gateway = FakeGateway()
    strategy = make_strategy(gateway)
    strategy.buy(NOW)

    strategy.cancel_outdated_orders(NOW + timedelta(minutes=5))
    assert gateway.canceled == []

    strategy.cancel_outdated_orders(NOW + timedelta(minutes=5, seconds=1))
    assert gateway.canceled == ["1"]


def test_run_cancels_buys_and_sells_in_one_tick():
    gateway = FakeGateway()
    strategy = make_strategy(gateway, max_concurrent_purchases=5)
    strategy.positions.append(Position(buy_order=filled_buy("100")))

    strategy.run(NOW)

    sides = [request.side for request in gateway.placed]
    assert sides == [OrderSide.BUY, OrderSide.SELL]


def test_close_out_trading_clears_positions():
    gateway = FakeGateway()
    strategy = make_strategy(gateway)
    strategy.buy(NOW)

    strategy.close_out_trading()

    assert gateway.closed_out
    assert strategy.positions == []


def test_params_validation_and_from_settings():
    from slope_trader.config.settings import StrategySettings

    params = SlopeScalperParams.from_settings(StrategySettings(stock_symbol="QQQ", purchase_quantity=Decimal(5)))
    assert params.symbol == "QQQ"
    assert params.purchase_quantity == Decimal(5)
    assert params.cash_buffer_multiplier == Decimal("1.2")

    with pytest.raises(ValueError):
        SlopeScalperParams(num_historical_bars_to_use=1)
