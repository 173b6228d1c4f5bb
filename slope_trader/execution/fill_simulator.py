"""
Probabilistic order-fill simulation against historical price samples.

**Conceptual**: A backtest has no exchange to match orders, so each tick the
simulator decides whether a pending order would have executed during that
minute, and at what price. Two ideas keep the estimate honest:

  1. A fill gate: even when the price conditions are met, an order fills only
     with a configured probability (default 75%), modeling the minutes where
     liquidity is thin and a real order would sit unfilled.
  2. Conservative prices: buyers pay the minute's HIGH, sellers receive the
     minute's LOW.

**Sell bracket (OCO) resolution**, evaluated on the minute's close:
  - close >= take-profit limit  -> fill at low (profit leg)
  - close <= stop price         -> fill at low (stop leg)
  - stop < close < limit        -> no fill, order stays pending
The profit leg is tested first, so it takes priority on exact equality. A
bracket whose limit is not strictly above its stop could satisfy both legs at
once and is rejected as a configuration error.

**Randomness**: The gate draws from an explicitly injected
numpy.random.Generator, so seeded runs are reproducible.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

import numpy as np

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.ledger import PortfolioLedger
from slope_trader.execution.orders import (
    InvalidOrderConfigError,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
)

logger = logging.getLogger(__name__)

DEFAULT_FILL_PROBABILITY = 0.75

# Statuses the simulator will try to fill
FILLABLE_STATES = frozenset({OrderStatus.NEW})


class FillPolicy(Protocol):
    """Decides whether an order that could fill this tick actually does."""

    def should_fill(self) -> bool:
        ...


class RandomFillPolicy:
    """
    Bernoulli fill gate.

    Args:
        fill_probability: Chance in [0, 1] that an eligible order fills on a tick.
        rng: Explicit generator. If omitted, one is created from `seed`.
        seed: Seed for the generator created when rng is omitted.
    """

    def __init__(
        self,
        fill_probability: float = DEFAULT_FILL_PROBABILITY,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ):
        if not 0.0 <= fill_probability <= 1.0:
            raise ValueError(f"fill_probability must be in [0, 1], got {fill_probability}")
        self.fill_probability = fill_probability
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def should_fill(self) -> bool:
        return bool(self.rng.random() < self.fill_probability)


class AlwaysFillPolicy:
    """Deterministic policy: every eligible order fills."""

    def should_fill(self) -> bool:
        return True


@dataclass(frozen=True)
class FillResult:
    """
    Outcome of one fill attempt.

    Attributes:
        filled: Whether the order executed this tick.
        price: Execution price (None when not filled).
        quantity: Executed quantity (zero when not filled).
        leg: "market", "take_profit" or "stop_loss" when filled.
    """
    filled: bool
    price: Decimal | None = None
    quantity: Decimal = Decimal(0)
    leg: str | None = None


NOT_FILLED = FillResult(filled=False)


def validate_order_config(order: Order) -> None:
    """
    Reject orders the simulator cannot fill faithfully.

    Raises:
        InvalidOrderConfigError: For a sell without both bracket prices, a
            bracket whose limit is not above its stop, or a non-market buy.
    """
    if order.side == OrderSide.SELL:
        if order.limit_price is None or order.stop_price is None:
            raise InvalidOrderConfigError(
                f"Sell order {order.id} needs both a take-profit limit and a stop price "
                f"(limit={order.limit_price}, stop={order.stop_price})."
            )
        if order.limit_price <= order.stop_price:
            raise InvalidOrderConfigError(
                f"Sell order {order.id} has take-profit limit {order.limit_price} "
                f"not above stop {order.stop_price}; both legs could trigger at once."
            )
    elif order.order_type != OrderType.MARKET:
        raise InvalidOrderConfigError(
            f"Buy order {order.id} is {order.order_type.value}; only market buys are simulated."
        )


class OrderFillSimulator:
    """
    Resolves pending orders against the current minute's price sample.

    On a fill the order is marked filled and the trade is applied to the
    ledger (when one is attached).
    """

    def __init__(
        self,
        fill_policy: FillPolicy | None = None,
        ledger: PortfolioLedger | None = None,
    ):
        self.fill_policy = fill_policy or RandomFillPolicy()
        self.ledger = ledger

    def attempt_fill(
        self,
        order: Order,
        current_sample: PriceSample,
        now: datetime | None = None,
    ) -> FillResult:
        """
        Try to fill `order` during the minute described by `current_sample`.

        Args:
            order: Pending order (mutated on fill).
            current_sample: Price sample for the current simulated minute.
            now: Timestamp recorded as the fill time.

        Returns:
            FillResult describing what happened.

        Raises:
            InvalidOrderConfigError: If the order is misconfigured.
        """
        validate_order_config(order)

        if order.status not in FILLABLE_STATES:
            return NOT_FILLED

        if not self.fill_policy.should_fill():
            return NOT_FILLED

        if order.side == OrderSide.BUY:
            price, leg = current_sample.high_price, "market"
        elif current_sample.close_price >= order.limit_price:
            price, leg = current_sample.low_price, "take_profit"
        elif current_sample.close_price <= order.stop_price:
            price, leg = current_sample.low_price, "stop_loss"
        else:
            return NOT_FILLED

        quantity = order.quantity
        order.mark_filled(price, quantity, now)
        if self.ledger is not None:
            self.ledger.apply_fill(order, price, quantity)

        logger.debug("order %s (%s) filled via %s @ %s", order.id, order.side.value, leg, price)
        return FillResult(filled=True, price=price, quantity=quantity, leg=leg)
