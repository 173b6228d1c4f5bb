"""
Simulated trading gateway backed by historical data.

**Conceptual**: SimulatedGateway answers the strategy's questions the way a
brokerage would, but from a HistoricalSeries and a SimulatedClock:
  - "What are the last N bars?" -> samples from the series ending now.
  - "How much cash do I have?" -> the PortfolioLedger.
  - "What's the status of order X?" -> run the fill simulator for the current
    minute, then report the order.

That last point is the key design choice: order fills happen when the
strategy refreshes its orders, which is exactly when a live strategy would
learn about fills from the brokerage.

**Order IDs** are a per-run counter owned by the gateway instance (reset each
day at close-out), so independent runs never share state.
"""

import logging
from datetime import datetime
from decimal import Decimal

from slope_trader.backtesting.clock import SimulatedClock
from slope_trader.data.history import HistoricalSeries
from slope_trader.data.schemas import PriceSample
from slope_trader.execution.fill_simulator import OrderFillSimulator
from slope_trader.execution.ledger import PortfolioLedger
from slope_trader.execution.orders import (
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    UnknownOrderError,
)
from slope_trader.venues.base import Account

logger = logging.getLogger(__name__)


class SimulatedGateway:
    """
    TradingGateway implementation for backtests.

    Args:
        series: Historical minute data.
        clock: The run's simulated clock.
        ledger: The run's cash/share ledger.
        fill_simulator: Resolves pending orders; should share `ledger`.
    """

    def __init__(
        self,
        series: HistoricalSeries,
        clock: SimulatedClock,
        ledger: PortfolioLedger,
        fill_simulator: OrderFillSimulator,
    ):
        self.series = series
        self.clock = clock
        self.ledger = ledger
        self.fill_simulator = fill_simulator

        self._orders: dict[str, Order] = {}
        self._last_order_id = 0

    @property
    def orders_created(self) -> int:
        """Orders placed since the last order-ID reset."""
        return self._last_order_id

    def now(self) -> datetime:
        return self.clock.now()

    def current_sample(self) -> PriceSample:
        return self.series.lookup(self.clock.now())

    def place_order(self, request: OrderRequest) -> Order:
        self._last_order_id += 1
        order = Order(
            id=str(self._last_order_id),
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            order_type=request.order_type,
            created_at=self.clock.now(),
            status=OrderStatus.NEW,
        )
        if request.side == OrderSide.SELL:
            order.order_type = OrderType.LIMIT
            order.limit_price = request.take_profit_limit_price
            order.stop_price = request.stop_loss_stop_price
            order.stop_limit_price = request.stop_loss_limit_price

        self._orders[order.id] = order
        return order

    def cancel_order(self, order_id: str) -> None:
        # TODO: simulate cancellation of stale buys; until then a stale buy keeps
        # its chance to fill on later ticks.
        logger.debug("cancel of order %s ignored in backtest mode", order_id)

    def get_order(self, order_id: str) -> Order:
        """
        Resolve the order against the current minute and return it.

        Raises:
            UnknownOrderError: If no order with this ID was placed.
            NoDataError: If the clock is outside the loaded series.
            InvalidOrderConfigError: If a pending order is misconfigured.
        """
        order = self._orders.get(order_id)
        if order is None:
            raise UnknownOrderError(f"Simulated gateway has no order {order_id!r}.")

        if order.status == OrderStatus.NEW:
            self.fill_simulator.attempt_fill(order, self.current_sample(), self.clock.now())
        return order

    def get_recent_bars(self, symbol: str, count: int) -> list[PriceSample]:
        return self.series.recent_samples(self.clock.now(), count)

    def get_account(self) -> Account:
        return Account(cash=self.ledger.cash)

    def close_out_trading(self) -> None:
        """Liquidate held shares at the current minute's low and drop all orders."""
        self.close_out_at(self.current_sample())

    def close_out_at(self, sample: PriceSample) -> Decimal:
        """Liquidate at `sample`'s low (used when the session or the series ended
        and the clock has already moved past the day's last minute)."""
        proceeds = self.ledger.liquidate(sample)
        logger.debug("closed out trading at %s, proceeds %s", self.clock.now(), proceeds)
        self._orders.clear()
        return proceeds

    def reset_order_ids(self) -> None:
        self._last_order_id = 0
