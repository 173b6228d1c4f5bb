"""
Order and position (purchase) model shared by live and simulated trading.

**Conceptual**: The strategy thinks in *positions*: one buy order paired with
at most one sell order. A position exists from the moment its buy is placed
until the paired sell fills (or trading is force-closed at end of day).

**Order shapes used by the strategy**:
  - Buy: market order for a fixed quantity.
  - Sell: OCO bracket (one-cancels-other). The parent carries the take-profit
    limit price; the stop-loss leg carries a stop price and a stop-limit
    price. Whichever leg triggers first fills the order; the other is void.

**Status vocabulary** mirrors the brokerage's order states so positions read
the same in both modes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class InvalidOrderConfigError(ValueError):
    """
    Raised when an order is missing configuration it needs to be filled.

    Example: a sell bracket without a take-profit limit or stop price. This is
    a strategy bug and must never fill silently.
    """
    pass


class UnknownOrderError(KeyError):
    """Raised when a gateway is asked about an order it never created."""
    pass


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class OrderStatus(str, Enum):
    NEW = "new"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    DONE_FOR_DAY = "done_for_day"
    CANCELED = "canceled"
    EXPIRED = "expired"
    REPLACED = "replaced"
    PENDING_CANCEL = "pending_cancel"
    PENDING_REPLACE = "pending_replace"
    PENDING_NEW = "pending_new"
    ACCEPTED = "accepted"
    ACCEPTED_FOR_BIDDING = "accepted_for_bidding"
    CALCULATED = "calculated"
    STOPPED = "stopped"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    HELD = "held"


# States in which an order receives no further updates
ORDER_COMPLETED_STATES = frozenset({
    OrderStatus.FILLED,
    OrderStatus.CANCELED,
    OrderStatus.EXPIRED,
    OrderStatus.STOPPED,
    OrderStatus.REJECTED,
    OrderStatus.SUSPENDED,
})

# Completed without a fill
ENDED_UNSUCCESSFULLY_STATES = ORDER_COMPLETED_STATES - {OrderStatus.FILLED}

# Working states (placed, not yet completed)
IN_PROGRESS_STATES = frozenset({
    OrderStatus.NEW,
    OrderStatus.PARTIALLY_FILLED,
    OrderStatus.DONE_FOR_DAY,
    OrderStatus.ACCEPTED,
    OrderStatus.PENDING_NEW,
    OrderStatus.ACCEPTED_FOR_BIDDING,
    OrderStatus.CALCULATED,
    OrderStatus.HELD,
})


@dataclass(frozen=True)
class OrderRequest:
    """
    What the strategy asks a gateway to place.

    For an OCO sell, take_profit_limit_price and stop_loss_stop_price are
    required; stop_loss_limit_price bounds how low the stop leg may sell.
    """
    symbol: str
    side: OrderSide
    quantity: Decimal
    order_type: OrderType = OrderType.MARKET
    time_in_force: str = "day"
    take_profit_limit_price: Decimal | None = None
    stop_loss_stop_price: Decimal | None = None
    stop_loss_limit_price: Decimal | None = None

    @property
    def is_oco(self) -> bool:
        return self.take_profit_limit_price is not None or self.stop_loss_stop_price is not None


@dataclass
class Order:
    """
    A placed order and its latest known state (the "pending order").

    Attributes:
        id: Gateway-assigned identifier.
        symbol: Ticker.
        side: Buy or sell.
        quantity: Requested share quantity.
        order_type: Market (buys) or limit (OCO sells).
        created_at: When the order was placed.
        status: Latest status.
        limit_price: Take-profit limit (OCO sells).
        stop_price: Stop-loss trigger (OCO sells).
        stop_limit_price: Stop-loss leg limit (OCO sells).
        filled_avg_price: Average fill price once filled.
        filled_qty: Quantity filled so far.
        filled_at: Fill timestamp.
        replaced_by: ID of the replacement order, if the brokerage replaced it.
    """
    id: str
    symbol: str
    side: OrderSide
    quantity: Decimal
    order_type: OrderType
    created_at: datetime
    status: OrderStatus = OrderStatus.NEW
    limit_price: Decimal | None = None
    stop_price: Decimal | None = None
    stop_limit_price: Decimal | None = None
    filled_avg_price: Decimal | None = None
    filled_qty: Decimal = field(default_factory=lambda: Decimal(0))
    filled_at: datetime | None = None
    replaced_by: str | None = None

    @property
    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED

    def mark_filled(self, price: Decimal, quantity: Decimal, filled_at: datetime | None = None) -> None:
        self.status = OrderStatus.FILLED
        self.filled_avg_price = price
        self.filled_qty = quantity
        self.filled_at = filled_at


@dataclass
class Position:
    """
    One round trip: a buy order and (eventually) its paired sell order.

    Called a "purchase" in the strategy's vocabulary and in the purchase store.
    """
    buy_order: Order
    sell_order: Order | None = None
    id: int | None = None

    def buy_filled(self) -> bool:
        return self.buy_order.status == OrderStatus.FILLED

    def sell_filled(self) -> bool:
        return self.sell_order is not None and self.sell_order.status == OrderStatus.FILLED

    def buy_has_status(self, status: OrderStatus) -> bool:
        return self.buy_order.status == status

    def sell_has_status(self, status: OrderStatus) -> bool:
        return self.sell_order is not None and self.sell_order.status == status

    def buy_in_progress(self) -> bool:
        """Buy is at any working stage (placed, not yet filled or ended)."""
        return self.buy_order.status in IN_PROGRESS_STATES

    def sell_in_progress(self) -> bool:
        return self.sell_order is not None and self.sell_order.status in IN_PROGRESS_STATES

    def in_progress_buy_order(self) -> bool:
        """Buy order is still open (will receive further updates)."""
        return self.buy_order.status not in ORDER_COMPLETED_STATES

    def in_progress_sell_order(self) -> bool:
        return self.sell_order is not None and self.sell_order.status not in ORDER_COMPLETED_STATES

    def buy_ended_unsuccessfully(self) -> bool:
        return self.buy_order.status in ENDED_UNSUCCESSFULLY_STATES

    def not_selling(self) -> bool:
        """
        No sell is working: none was placed yet, or the last one ended unfilled.
        """
        if self.sell_order is None:
            return True
        return self.sell_order.status in ENDED_UNSUCCESSFULLY_STATES

    def open_and_unsold(self) -> bool:
        """
        Counts toward the concurrency cap: the buy is placed or filled and the
        shares have not been sold yet.
        """
        return not self.sell_filled() and not self.buy_ended_unsuccessfully()

    def buy_filled_avg_price(self) -> Decimal | None:
        return self.buy_order.filled_avg_price
