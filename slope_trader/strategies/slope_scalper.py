"""
Slope-signal scalping strategy.

**Conceptual**: Scalp small intraday moves in a single symbol. Each decision
tick the strategy:
  1. Cancels buy orders that have been pending too long (stale).
  2. Opens a position (market buy) when the last N one-minute closes trend up
     steeply enough, there is cash for the buy plus a 20% buffer, and fewer
     than max_concurrent_purchases positions are open.
  3. Places an OCO sell bracket for every filled buy that is not selling yet:
       take-profit  = fill * (1 + 0.2%)
       stop trigger = fill * (1 - 0.12%)
       stop limit   = fill * (1 - 0.17%)

**Trend slope**: least-squares slope of close against bar index (see
utils.math.compute_trend_slope). With the default threshold of 1.3 the price
must be climbing about $1.30 per minute.

**Dual mode without branching**: the strategy only talks to a TradingGateway.
In a backtest that is a SimulatedGateway (fills resolved by the simulator when
orders are refreshed); live it is a LiveGateway over the brokerage API.

**Error policy**: "no signal" conditions (short history, low cash, flat slope,
cap reached) are logged and skipped. GatewayError from the venue is logged and
the tick moves on. Everything else (bad data, invalid order configuration)
propagates and ends the run.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from slope_trader.config.settings import StrategySettings
from slope_trader.execution.orders import (
    Order,
    OrderRequest,
    OrderSide,
    OrderType,
    Position,
)
from slope_trader.storage.purchases import NullPurchaseStore, PurchaseStore
from slope_trader.utils.math import all_sequential_increases, compute_trend_slope
from slope_trader.venues.base import GatewayError, TradingGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlopeScalperParams:
    """
    Decision parameters for SlopeScalperStrategy.

    Attributes:
        symbol: Ticker to trade.
        purchase_quantity: Shares per buy.
        max_concurrent_purchases: Cap on open (placed or filled, unsold) positions.
        num_historical_bars_to_use: Closes in the slope window.
        min_slope_required_to_buy: Slope threshold (price per bar).
        all_sequential_increases_required: Also require strictly rising closes.
        stale_buy_order_timeout: Pending buys older than this are canceled.
        take_profit_ratio: Take-profit distance above the buy fill.
        stop_loss_ratio: Stop trigger distance below the buy fill.
        stop_limit_ratio: Stop leg limit distance below the buy fill.
        cash_buffer_multiplier: Cash needed = price * quantity * this.
    """
    symbol: str = "SPY"
    purchase_quantity: Decimal = Decimal(10)
    max_concurrent_purchases: int = 20
    num_historical_bars_to_use: int = 3
    min_slope_required_to_buy: float = 1.3
    all_sequential_increases_required: bool = False
    stale_buy_order_timeout: timedelta = timedelta(minutes=5)
    take_profit_ratio: Decimal = Decimal("0.002")
    stop_loss_ratio: Decimal = Decimal("0.0012")
    stop_limit_ratio: Decimal = Decimal("0.0017")
    cash_buffer_multiplier: Decimal = Decimal("1.2")

    def __post_init__(self):
        if self.num_historical_bars_to_use < 2:
            raise ValueError(
                f"num_historical_bars_to_use must be at least 2, got {self.num_historical_bars_to_use}"
            )
        if self.purchase_quantity <= 0:
            raise ValueError(f"purchase_quantity must be positive, got {self.purchase_quantity}")

    @classmethod
    def from_settings(cls, settings: StrategySettings) -> "SlopeScalperParams":
        return cls(
            symbol=settings.stock_symbol,
            purchase_quantity=settings.purchase_quantity,
            max_concurrent_purchases=settings.max_concurrent_purchases,
            num_historical_bars_to_use=settings.num_historical_bars_to_use,
            min_slope_required_to_buy=settings.min_slope_required_to_buy,
            all_sequential_increases_required=settings.all_sequential_increases_required,
            stale_buy_order_timeout=settings.stale_buy_order_timeout,
            take_profit_ratio=settings.take_profit_ratio,
            stop_loss_ratio=settings.stop_loss_ratio,
            stop_limit_ratio=settings.stop_limit_ratio,
        )


class SlopeScalperStrategy:
    """
    Buy/sell decision engine shared by backtest and live trading.

    **Usage** (one decision tick):
        strategy.refresh_orders()   # learn about fills
        strategy.run(now)           # cancel stale, maybe buy, place sells

    Args:
        gateway: Venue providing orders, bars, account and time.
        params: Decision parameters.
        store: Purchase persistence (NullPurchaseStore by default).

    Attributes:
        positions: Every position opened since the last close-out.
    """

    def __init__(
        self,
        gateway: TradingGateway,
        params: Optional[SlopeScalperParams] = None,
        store: Optional[PurchaseStore] = None,
    ):
        self.gateway = gateway
        self.params = params or SlopeScalperParams()
        self.store = store if store is not None else NullPurchaseStore()
        self.positions: list[Position] = []

    # ------------------------------------------------------------------
    # Position views
    # ------------------------------------------------------------------

    def bought_not_selling(self) -> list[Position]:
        """Filled buys with no working or filled sell (they need a sell order)."""
        return [p for p in self.positions if p.buy_filled() and p.not_selling()]

    def in_progress_purchases(self) -> list[Position]:
        """Positions counting toward the concurrency cap."""
        return [p for p in self.positions if p.open_and_unsold()]

    def in_progress_buy_orders(self) -> list[Position]:
        return [p for p in self.positions if p.in_progress_buy_order()]

    def in_progress_sell_orders(self) -> list[Position]:
        return [p for p in self.positions if p.in_progress_sell_order()]

    # ------------------------------------------------------------------
    # Order refresh
    # ------------------------------------------------------------------

    def _fetch_order(self, order_id: str) -> Optional[Order]:
        try:
            return self.gateway.get_order(order_id)
        except GatewayError as e:
            logger.warning("unable to refresh order %s: %s", order_id, e)
            return None

    def refresh_orders(self) -> None:
        """
        Replace every working order with the venue's latest view of it.

        In a backtest this is where pending orders get the chance to fill.
        """
        for position in self.in_progress_buy_orders():
            order = self._fetch_order(position.buy_order.id)
            if order is None:
                continue
            position.buy_order = order
            self.store.update(position)

        for position in self.in_progress_sell_orders():
            order = self._fetch_order(position.sell_order.id)
            if order is None:
                continue
            position.sell_order = order
            self.store.update(position)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def run(self, now: datetime) -> None:
        """One decision tick: cancel stale buys, maybe buy, then place sells."""
        self.cancel_outdated_orders(now)
        self.buy(now)
        self.sell()

    def cancel_outdated_orders(self, now: datetime) -> None:
        for position in self.in_progress_buy_orders():
            age = now - position.buy_order.created_at
            if age <= self.params.stale_buy_order_timeout:
                continue
            try:
                self.gateway.cancel_order(position.buy_order.id)
            except GatewayError as e:
                logger.warning("unable to cancel %s: %s", position.buy_order.id, e)

    def buy(self, now: datetime) -> Optional[Position]:
        """
        Open a position if the cap allows and the buy signal fires.

        Returns:
            The new Position, or None if no buy was placed.
        """
        if len(self.in_progress_purchases()) >= self.params.max_concurrent_purchases:
            logger.debug("allowable purchases used @ %s", now)
            return None
        if not self.buy_signal(now):
            return None
        return self.place_buy_order()

    def buy_signal(self, now: datetime) -> bool:
        """
        Whether this tick is a buy event.

        Fails closed on short history, insufficient cash, or venue errors.
        """
        n = self.params.num_historical_bars_to_use
        try:
            bars = self.gateway.get_recent_bars(self.params.symbol, n)
        except GatewayError as e:
            logger.warning("unable to get recent bars @ %s: %s", now, e)
            return False
        if len(bars) < n:
            logger.debug("only %d of %d bars available @ %s", len(bars), n, now)
            return False

        try:
            account = self.gateway.get_account()
        except GatewayError as e:
            logger.warning("unable to get account details to check for needed cash: %s", e)
            return False

        needed_cash = bars[-1].high_price * self.params.purchase_quantity * self.params.cash_buffer_multiplier
        if account.cash < needed_cash:
            logger.info("not enough cash to perform a trade, have %s, need %s", account.cash, needed_cash)
            return False

        closes = [bar.close_price for bar in bars]
        slope = compute_trend_slope(closes)
        logger.debug("slope: %.2f @ %s", slope, now)
        if slope < self.params.min_slope_required_to_buy:
            return False

        if self.params.all_sequential_increases_required and not all_sequential_increases(closes):
            logger.debug("non-positive improvements @ %s", now)
            return False
        return True

    def place_buy_order(self) -> Optional[Position]:
        request = OrderRequest(
            symbol=self.params.symbol,
            side=OrderSide.BUY,
            quantity=self.params.purchase_quantity,
            order_type=OrderType.MARKET,
            time_in_force="day",
        )
        try:
            order = self.gateway.place_order(request)
        except GatewayError as e:
            logger.error("unable to place buy order: %s", e)
            return None

        position = Position(buy_order=order)
        self.positions.append(position)
        self.store.insert(position)
        logger.info("buy order %s placed @ %s", order.id, order.created_at)
        return position

    def sell(self) -> None:
        for position in self.bought_not_selling():
            self.place_sell_order(position)

    def sell_bracket(self, base_price: Decimal) -> tuple[Decimal, Decimal, Decimal]:
        """(take-profit limit, stop trigger, stop limit) around a buy fill price."""
        take_profit = base_price * (1 + self.params.take_profit_ratio)
        stop_price = base_price - base_price * self.params.stop_loss_ratio
        stop_limit = base_price - base_price * self.params.stop_limit_ratio
        return take_profit, stop_price, stop_limit

    def place_sell_order(self, position: Position) -> Optional[Order]:
        base_price = position.buy_filled_avg_price()
        if not base_price:
            logger.error("filled average price missing for buy order %s", position.buy_order.id)
            return None

        take_profit, stop_price, stop_limit = self.sell_bracket(base_price)
        request = OrderRequest(
            symbol=self.params.symbol,
            side=OrderSide.SELL,
            quantity=position.buy_order.filled_qty or self.params.purchase_quantity,
            order_type=OrderType.LIMIT,
            time_in_force="gtc",
            take_profit_limit_price=take_profit,
            stop_loss_stop_price=stop_price,
            stop_loss_limit_price=stop_limit,
        )
        try:
            order = self.gateway.place_order(request)
        except GatewayError as e:
            logger.error("unable to place sell order for buy %s: %s", position.buy_order.id, e)
            return None

        position.sell_order = order
        self.store.update(position)
        logger.info(
            "sell order %s placed (take profit %s, stop %s)", order.id, take_profit, stop_price,
        )
        return order

    def close_out_trading(self) -> None:
        """Flatten everything at the venue and forget today's positions."""
        self.gateway.close_out_trading()
        self.positions.clear()
