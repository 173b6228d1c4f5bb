"""
Tests for OrderFillSimulator.

Deterministic policies are injected wherever the fill gate is not the subject
of the test; the gate itself is tested with seeded generators.
"""

from datetime import datetime
from decimal import Decimal

import numpy as np
import pytest

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.fill_simulator import (
    AlwaysFillPolicy,
    OrderFillSimulator,
    RandomFillPolicy,
    validate_order_config,
)
from slope_trader.execution.ledger import PortfolioLedger
from slope_trader.execution.orders import (
    InvalidOrderConfigError,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
)
from slope_trader.utils.time import MARKET_TIMEZONE

T0 = datetime(2024, 1, 3, 10, 0, tzinfo=MARKET_TIMEZONE)


class NeverFillPolicy:
    def should_fill(self) -> bool:
        return False


def sample(high: str, low: str, close: str) -> PriceSample:
    return PriceSample(high_price=Decimal(high), low_price=Decimal(low), close_price=Decimal(close))


def buy_order() -> Order:
    return Order(
        id="1",
        symbol="SPY",
        side=OrderSide.BUY,
        quantity=Decimal(10),
        order_type=OrderType.MARKET,
        created_at=T0,
    )


def sell_order(limit: str | None = "101", stop: str | None = "98") -> Order:
    return Order(
        id="2",
        symbol="SPY",
        side=OrderSide.SELL,
        quantity=Decimal(10),
        order_type=OrderType.LIMIT,
        created_at=T0,
        limit_price=Decimal(limit) if limit is not None else None,
        stop_price=Decimal(stop) if stop is not None else None,
        stop_limit_price=Decimal("97.5"),
    )


@pytest.fixture
def simulator():
    return OrderFillSimulator(AlwaysFillPolicy())


def test_buy_fills_at_high(simulator):
    order = buy_order()

    result = simulator.attempt_fill(order, sample("102.5", "100", "102"), T0)

    assert result.filled
    assert result.price == Decimal("102.5")
    assert result.leg == "market"
    assert order.status == OrderStatus.FILLED
    assert order.filled_avg_price == Decimal("102.5")
    assert order.filled_at == T0


def test_sell_take_profit_fills_at_low(simulator):
    order = sell_order()

    result = simulator.attempt_fill(order, sample("102.5", "100.5", "102"))

    assert result.filled
    assert result.leg == "take_profit"
    assert result.price == Decimal("100.5")


def test_sell_stop_loss_fills_at_low(simulator):
    result = simulator.attempt_fill(sell_order(), sample("99", "97", "97.5"))

    assert result.filled
    assert result.leg == "stop_loss"
    assert result.price == Decimal("97")


def test_sell_between_legs_does_not_fill(simulator):
    order = sell_order()

    result = simulator.attempt_fill(order, sample("100", "99", "99.5"))

    assert not result.filled
    assert order.status == OrderStatus.NEW


def test_take_profit_wins_on_exact_limit(simulator):
    result = simulator.attempt_fill(sell_order(), sample("101", "100", "101"))

    assert result.leg == "take_profit"


def test_stop_triggers_on_exact_stop(simulator):
    result = simulator.attempt_fill(sell_order(), sample("98.5", "97.8", "98"))

    assert result.leg == "stop_loss"


def test_fill_gate_can_block_an_eligible_order():
    simulator = OrderFillSimulator(NeverFillPolicy())
    order = buy_order()

    assert not simulator.attempt_fill(order, sample("1", "1", "1")).filled
    assert order.status == OrderStatus.NEW


def test_filled_orders_are_not_filled_twice(simulator):
    order = buy_order()
    simulator.attempt_fill(order, sample("10", "9", "9.5"))

    result = simulator.attempt_fill(order, sample("20", "19", "19.5"))

    assert not result.filled
    assert order.filled_avg_price == Decimal("10")


@pytest.mark.parametrize("status", [OrderStatus.PARTIALLY_FILLED, OrderStatus.CANCELED, OrderStatus.HELD])
def test_only_new_orders_are_filled(simulator, status):
    order = buy_order()
    order.status = status

    assert not simulator.attempt_fill(order, sample("10", "9", "9.5")).filled
    assert order.status == status


def test_fill_is_applied_to_ledger():
    ledger = PortfolioLedger(Decimal(100000))
    simulator = OrderFillSimulator(AlwaysFillPolicy(), ledger)

    simulator.attempt_fill(buy_order(), sample("102.5", "100", "102"))

    assert ledger.cash == Decimal(100000) - Decimal("1025.0")
    assert ledger.shares_held == Decimal(10)


@pytest.mark.parametrize(
    "order, message",
    [
        (sell_order(limit=None), "needs both"),
        (sell_order(stop=None), "needs both"),
        (sell_order(limit="98", stop="98"), "not above stop"),
    ],
)
def test_invalid_sell_configuration_raises(order, message):
    with pytest.raises(InvalidOrderConfigError, match=message):
        OrderFillSimulator(AlwaysFillPolicy()).attempt_fill(order, sample("1", "1", "1"))


def test_invalid_configuration_raises_even_when_gate_says_no():
    with pytest.raises(InvalidOrderConfigError):
        OrderFillSimulator(NeverFillPolicy()).attempt_fill(
            sell_order(limit=None), sample("1", "1", "1")
        )


def test_non_market_buy_is_rejected():
    order = buy_order()
    order.order_type = OrderType.LIMIT

    with pytest.raises(InvalidOrderConfigError, match="only market buys"):
        validate_order_config(order)


def test_random_policy_is_reproducible_with_seed():
    policy_a = RandomFillPolicy(0.75, rng=np.random.default_rng(7))
    policy_b = RandomFillPolicy(0.75, seed=7)

    assert [policy_a.should_fill() for _ in range(50)] == [policy_b.should_fill() for _ in range(50)]


def test_random_policy_rate_is_close_to_probability():
    policy = RandomFillPolicy(0.75, seed=123)

    fills = sum(policy.should_fill() for _ in range(10000))

    assert 7200 < fills < 7800


def test_random_policy_extremes_and_validation():
    assert all(RandomFillPolicy(1.0, seed=1).should_fill() for _ in range(100))
    assert not any(RandomFillPolicy(0.0, seed=1).should_fill() for _ in range(100))

    with pytest.raises(ValueError):
        RandomFillPolicy(1.5)
