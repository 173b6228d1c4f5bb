"""
Cash and share ledger for the simulated account.

**Conceptual**: The ledger is the backtest's stand-in for a brokerage account.
It tracks two numbers, cash and shares held, and changes them only when a fill
is applied or the day is force-liquidated. Everything is decimal.Decimal, so a
buy followed by a sell at the same price returns cash to exactly where it
started, no matter how many thousands of ticks the run lasts.

**Financial assumptions** (documented modeling simplifications):
  - Fills are all-or-nothing at a single price.
  - No fees, no slippage beyond the high/low/close price choice made by the
    fill simulator.
  - End-of-day liquidation sells everything at the minute's LOW, a
    conservative stand-in for a market sell. This is a deliberate modeling
    choice, not a placeholder.
"""

import logging
from decimal import Decimal

from slope_trader.data.schemas import PriceSample
from slope_trader.execution.orders import Order, OrderSide
from slope_trader.utils.math import profit_loss_percent

logger = logging.getLogger(__name__)


class PortfolioLedger:
    """
    Single-symbol cash/position ledger.

    Attributes:
        cash: Current cash balance.
        shares_held: Current share quantity.
        cash_at_day_start: Cash captured by the last snapshot_day_start().
        cash_at_day_end: Cash captured by the last snapshot_day_end() (None
                         until the first day closes).
        cash_at_session_start: Cash when the run started.
    """

    def __init__(self, starting_cash: Decimal):
        starting_cash = Decimal(starting_cash)
        if starting_cash <= 0:
            raise ValueError(f"starting_cash must be positive, got {starting_cash}")

        self.cash = starting_cash
        self.shares_held = Decimal(0)
        self.cash_at_session_start = starting_cash
        self.cash_at_day_start = starting_cash
        self.cash_at_day_end: Decimal | None = None

    def apply_fill(self, order: Order, filled_price: Decimal, quantity: Decimal) -> None:
        """
        Apply an executed trade.

          - Buy:  cash -= price * quantity, shares += quantity
          - Sell: cash += price * quantity, shares -= quantity
        """
        notional = filled_price * quantity
        if order.side == OrderSide.BUY:
            self.cash -= notional
            self.shares_held += quantity
        else:
            self.cash += notional
            self.shares_held -= quantity

        if self.cash < 0 or self.shares_held < 0:
            logger.warning(
                "ledger went negative after %s %s @ %s: cash=%s shares=%s",
                order.side.value, quantity, filled_price, self.cash, self.shares_held,
            )

    def snapshot_day_start(self) -> Decimal:
        self.cash_at_day_start = self.cash
        self.cash_at_day_end = None
        return self.cash

    def snapshot_day_end(self) -> Decimal:
        self.cash_at_day_end = self.cash
        return self.cash

    def liquidate(self, sample: PriceSample) -> Decimal:
        """
        Sell every held share at the sample's low and zero the position.

        Returns:
            Cash proceeds of the liquidation.
        """
        proceeds = sample.low_price * self.shares_held
        self.cash += proceeds
        self.shares_held = Decimal(0)
        return proceeds

    def day_profit_loss_percent(self) -> Decimal:
        """
        P/L % from the day-start snapshot to the day-end snapshot.

        Raises:
            ValueError: If the day has not been closed with snapshot_day_end().
        """
        if self.cash_at_day_end is None:
            raise ValueError("Day profit/loss needs snapshot_day_end() first.")
        return profit_loss_percent(self.cash_at_day_start, self.cash_at_day_end)
