"""
Live trading gateway over the Alpaca REST API.

**Conceptual**: LiveGateway adapts AlpacaClient's raw JSON into the domain
model the strategy uses (Order, PriceSample, Account), and builds Alpaca
request bodies from OrderRequests. It is the live counterpart of
SimulatedGateway; the strategy cannot tell them apart.

**Replacements**: Alpaca may replace an order (e.g., after a modification).
get_order follows `replaced_by` once so positions always track the live order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

import pandas as pd

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.orders import (
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
)
from slope_trader.utils.time import MARKET_TIMEZONE, Clock, RealClock
from slope_trader.venues.alpaca_client import AlpacaClient, AlpacaClientError, AlpacaNotFoundError
from slope_trader.venues.base import Account

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _timestamp_or_none(value: Any) -> Optional[datetime]:
    if not value:
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(MARKET_TIMEZONE).to_pydatetime()


def order_from_payload(payload: Dict[str, Any]) -> Order:
    """
    Convert an Alpaca order JSON object into an Order.

    For OCO sells the stop-loss leg is read from `legs` when present.

    Raises:
        AlpacaClientError: If the payload is missing fields or has values
            outside the known vocabulary.
    """
    try:
        order = Order(
            id=payload["id"],
            symbol=payload["symbol"],
            side=OrderSide(payload["side"]),
            quantity=Decimal(str(payload["qty"])),
            order_type=OrderType(payload.get("type") or payload.get("order_type")),
            created_at=_timestamp_or_none(payload["created_at"]),
            status=OrderStatus(payload["status"]),
            limit_price=_decimal_or_none(payload.get("limit_price")),
            stop_price=_decimal_or_none(payload.get("stop_price")),
            filled_avg_price=_decimal_or_none(payload.get("filled_avg_price")),
            filled_qty=_decimal_or_none(payload.get("filled_qty")) or Decimal(0),
            filled_at=_timestamp_or_none(payload.get("filled_at")),
            replaced_by=payload.get("replaced_by"),
        )
    except (KeyError, ValueError, TypeError, ArithmeticError) as e:
        raise AlpacaClientError(f"Unexpected order payload: {e}. Payload: {payload}") from e

    for leg in payload.get("legs") or []:
        if leg.get("stop_price") is not None:
            order.stop_price = _decimal_or_none(leg.get("stop_price"))
            order.stop_limit_price = _decimal_or_none(leg.get("limit_price"))
    return order


def payload_from_request(request: OrderRequest) -> Dict[str, Any]:
    """
    Build the Alpaca order body for a request.

    OCO sells become {"order_class": "oco", "take_profit": ..., "stop_loss": ...}
    with every price rounded to cents.
    """
    payload: Dict[str, Any] = {
        "symbol": request.symbol,
        "qty": str(request.quantity),
        "side": request.side.value,
        "type": request.order_type.value,
        "time_in_force": request.time_in_force,
    }
    if request.is_oco:
        payload["type"] = OrderType.LIMIT.value
        payload["order_class"] = "oco"
        payload["take_profit"] = {
            "limit_price": str(request.take_profit_limit_price.quantize(CENT)),
        }
        stop_loss = {"stop_price": str(request.stop_loss_stop_price.quantize(CENT))}
        if request.stop_loss_limit_price is not None:
            stop_loss["limit_price"] = str(request.stop_loss_limit_price.quantize(CENT))
        payload["stop_loss"] = stop_loss
    return payload


def sample_from_bar(bar: Dict[str, Any]) -> PriceSample:
    """Alpaca bar {"t", "o", "h", "l", "c", "v"} -> PriceSample."""
    try:
        return PriceSample(
            high_price=Decimal(str(bar["h"])),
            low_price=Decimal(str(bar["l"])),
            close_price=Decimal(str(bar["c"])),
        )
    except (KeyError, ArithmeticError) as e:
        raise AlpacaClientError(f"Unexpected bar payload: {e}. Bar: {bar}") from e


@dataclass(frozen=True)
class MarketClock:
    """Brokerage view of the session: open right now, and when it next closes."""
    is_open: bool
    next_close: datetime

    def time_until_close(self, now: datetime) -> timedelta:
        return self.next_close - now


class LiveGateway:
    """
    TradingGateway implementation backed by the Alpaca brokerage.

    Args:
        client: Configured AlpacaClient.
        clock: Time source (RealClock by default; inject FrozenClock in tests).
    """

    def __init__(self, client: AlpacaClient, clock: Optional[Clock] = None):
        self.client = client
        self.clock = clock or RealClock()

    def now(self) -> datetime:
        return self.clock.now()

    def place_order(self, request: OrderRequest) -> Order:
        return order_from_payload(self.client.place_order(payload_from_request(request)))

    def cancel_order(self, order_id: str) -> None:
        self.client.cancel_order(order_id)

    def get_order(self, order_id: str) -> Optional[Order]:
        """
        Latest state of an order, following one replacement.

        Returns None if Alpaca no longer knows the order (or its replacement).
        """
        try:
            order = order_from_payload(self.client.get_order(order_id))
            if order.replaced_by:
                logger.info("order %s was replaced by %s", order_id, order.replaced_by)
                order = order_from_payload(self.client.get_order(order.replaced_by))
        except AlpacaNotFoundError as e:
            logger.warning("order %s not found: %s", order_id, e)
            return None
        return order

    def get_recent_bars(self, symbol: str, count: int) -> list[PriceSample]:
        bars = self.client.get_bars(symbol, limit=count)
        # Alpaca returns newest first
        return [sample_from_bar(bar) for bar in reversed(bars)]

    def get_account(self) -> Account:
        payload = self.client.get_account() or {}
        cash = _decimal_or_none(payload.get("cash"))
        if cash is None:
            raise AlpacaClientError(f"Account payload has no cash: {payload}")
        return Account(cash=cash)

    def close_out_trading(self) -> None:
        """
        Cancel all orders, then close all positions.

        A failure in one step is logged and the other step still runs.
        """
        try:
            self.client.cancel_all_orders()
        except AlpacaClientError as e:
            logger.error("unable to cancel all orders: %s", e)
        try:
            self.client.close_all_positions()
        except AlpacaClientError as e:
            logger.error("unable to close all positions: %s", e)
        logger.info("trading closed out for the day")

    def market_clock(self) -> MarketClock:
        payload = self.client.get_clock() or {}
        next_close = _timestamp_or_none(payload.get("next_close"))
        if next_close is None or "is_open" not in payload:
            raise AlpacaClientError(f"Unexpected clock payload: {payload}")
        return MarketClock(is_open=bool(payload["is_open"]), next_close=next_close)
