"""
Capability protocols for trading gateways.

**Conceptual**: The strategy needs three capabilities from "the market":
  - OrderGateway: place, cancel, look up orders; close out the day.
  - ClockSource: what time is it?
  - QuoteSource: recent one-minute bars and the account's cash.

A TradingGateway is anything that provides all three. Two implementations
exist: SimulatedGateway (backtest, driven by historical data and the fill
simulator) and LiveGateway (brokerage REST API). The strategy is written once
against this protocol and never branches on "am I backtesting?".

**Why protocols over inheritance?** Structural typing keeps the gateways
independent of each other and makes test doubles trivial: any object with the
right methods is a gateway.

**Error contract**: Gateways raise GatewayError (or a subclass) for transient
venue failures the strategy should log and survive (a rejected order, a
network timeout). Programming and data errors propagate unchanged.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.orders import Order, OrderRequest


class GatewayError(Exception):
    """Recoverable failure talking to a trading venue."""
    pass


@dataclass(frozen=True)
class Account:
    """Account details the strategy needs (cash available to buy with)."""
    cash: Decimal


class OrderGateway(Protocol):

    def place_order(self, request: OrderRequest) -> Order:
        """Submit an order and return it as placed."""
        ...

    def cancel_order(self, order_id: str) -> None:
        ...

    def get_order(self, order_id: str) -> Order | None:
        """
        Return the latest state of an order (following replacements).

        None means the venue could not report on it this time.
        """
        ...

    def close_out_trading(self) -> None:
        """Cancel working orders and flatten every position."""
        ...


class ClockSource(Protocol):

    def now(self) -> datetime:
        ...


class QuoteSource(Protocol):

    def get_recent_bars(self, symbol: str, count: int) -> list[PriceSample]:
        """Up to `count` one-minute bars ending now, oldest first."""
        ...

    def get_account(self) -> Account:
        ...


class TradingGateway(OrderGateway, ClockSource, QuoteSource, Protocol):
    """Everything the strategy needs from a venue."""
    pass
