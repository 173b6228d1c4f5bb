"""
Minute-level backtest driver for the slope scalping strategy.

**Conceptual**: The driver replays a HistoricalSeries through a SimulatedClock
and lets the unchanged live strategy trade against a SimulatedGateway. One
loop iteration is one simulated tick:

  1. Advance the clock. Stop once it passes the end of the series.
  2. Skip closed ticks and ticks before the first loaded record.
  3. On the first open tick of a day: snapshot the ledger's day-start cash and
     remember the symbol's close (buy-and-hold benchmark for the day).
  4. Refresh working orders. In backtest mode this is where the fill
     simulator resolves them against the current minute.
  5. Inside the liquidation window before the close: liquidate at the low,
     purge positions, record the day report, reset order IDs and fast-forward
     the clock past the window. If a day is still active when the session
     ends (closed tick or new date), it is closed out the same way at its
     last open tick before anything else happens.
  6. Otherwise run the strategy: cancel stale buys, maybe buy, place sells.

When the loop ends with a trading day still active, everything held is
liquidated at the last sample's low so the final cash is comparable with
completed days.

**Why a run object?** The ledger, clock, gateway, order-ID counter and
strategy state belong to one run. Keeping them on a BacktestRun instance (not
in module globals) means two runs never interfere, and tests can step a run
tick by tick.

**Teaching note**: The driver is single-threaded and synchronous on purpose.
The only randomness is the fill gate, and that draws from a seeded generator.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

import pandas as pd

from slope_trader.analytics.risk_metrics import (
    DayStatistics,
    day_end_cash_series,
    summarize_day_end_cash,
)
from slope_trader.backtesting.clock import SimulatedClock
from slope_trader.backtesting.reporting import format_day_report
from slope_trader.config.settings import BacktestSettings, StrategySettings
from slope_trader.data.history import HistoricalSeries
from slope_trader.execution.fill_simulator import (
    DEFAULT_FILL_PROBABILITY,
    FillPolicy,
    OrderFillSimulator,
    RandomFillPolicy,
)
from slope_trader.execution.ledger import PortfolioLedger
from slope_trader.storage.purchases import PurchaseStore
from slope_trader.strategies.slope_scalper import SlopeScalperParams, SlopeScalperStrategy
from slope_trader.utils.math import profit_loss_percent
from slope_trader.utils.time import SessionHours
from slope_trader.venues.simulated_gateway import SimulatedGateway

logger = logging.getLogger(__name__)


@dataclass
class BacktestParams:
    """
    Driver parameters for one backtest run.

    Attributes:
        starting_cash: Cash when the run starts.
        time_between_actions: Clock step (one decision per step).
        time_before_market_close_to_liquidate: Liquidation window before the close.
            0 means no window: the day is closed out at its last open tick.
        fill_probability: Chance an eligible order fills on a tick.
        seed: Seed for the fill gate (None = fresh entropy).
        print_day_details: Print each day's report when it closes.
        session_hours: Session boundaries (regular US hours by default).
    """
    starting_cash: Decimal = Decimal(100000)
    time_between_actions: timedelta = timedelta(seconds=60)
    time_before_market_close_to_liquidate: timedelta = timedelta(hours=1)
    fill_probability: float = DEFAULT_FILL_PROBABILITY
    seed: Optional[int] = None
    print_day_details: bool = False
    session_hours: Optional[SessionHours] = None

    def __post_init__(self):
        if self.starting_cash <= 0:
            raise ValueError(f"starting_cash must be positive, got {self.starting_cash}")
        if self.time_between_actions <= timedelta(0):
            raise ValueError(
                f"time_between_actions must be positive, got {self.time_between_actions}"
            )
        window = self.time_before_market_close_to_liquidate
        if window < timedelta(0):
            raise ValueError("time_before_market_close_to_liquidate cannot be negative")
        # No tick can land strictly inside a window this short
        if timedelta(0) < window <= self.time_between_actions:
            raise ValueError(
                f"time_before_market_close_to_liquidate ({window}) must be 0 or longer "
                f"than time_between_actions ({self.time_between_actions})"
            )

    @classmethod
    def from_settings(
        cls,
        strategy: StrategySettings,
        backtest: BacktestSettings,
    ) -> "BacktestParams":
        return cls(
            starting_cash=backtest.starting_cash,
            time_between_actions=strategy.time_between_actions,
            time_before_market_close_to_liquidate=strategy.time_before_market_close_to_liquidate,
            fill_probability=backtest.fill_probability,
            seed=backtest.seed,
            print_day_details=backtest.print_day_details,
        )


@dataclass(frozen=True)
class DayReport:
    """
    One trading day's result, captured at close-out.

    Attributes:
        timestamp: Simulated time of the close-out.
        orders_created: Orders placed that day.
        cash_at_day_start: Cash at the first open tick.
        cash: Cash after liquidation.
        profit_loss_percent: Strategy P/L % for the day.
        symbol_profit_loss_percent: Buy-and-hold P/L % for the day.
    """
    timestamp: datetime
    orders_created: int
    cash_at_day_start: Decimal
    cash: Decimal
    profit_loss_percent: Decimal
    symbol_profit_loss_percent: Decimal

    @property
    def algorithm_benefit(self) -> Decimal:
        return self.profit_loss_percent - self.symbol_profit_loss_percent


@dataclass
class BacktestResult:
    """
    Outcome of a backtest run.

    Attributes:
        starting_cash: Cash at the start.
        ending_cash: Cash after the final liquidation.
        symbol_start_price: First close in the series (buy-and-hold entry).
        symbol_end_price: Last close in the series (buy-and-hold exit).
        day_reports: One entry per trading day, oldest first.
        statistics: Summary of the day-end cash curve.
    """
    starting_cash: Decimal
    ending_cash: Decimal
    symbol_start_price: Decimal
    symbol_end_price: Decimal
    day_reports: list[DayReport] = field(default_factory=list)
    statistics: Optional[DayStatistics] = None

    @property
    def profit_loss_percent(self) -> Decimal:
        return profit_loss_percent(self.starting_cash, self.ending_cash)

    @property
    def symbol_profit_loss_percent(self) -> Decimal:
        return profit_loss_percent(self.symbol_start_price, self.symbol_end_price)

    @property
    def algorithm_benefit(self) -> Decimal:
        return self.profit_loss_percent - self.symbol_profit_loss_percent

    def day_end_cash(self) -> pd.Series:
        """Day-end cash indexed by trading date."""
        return day_end_cash_series(
            [r.timestamp.date() for r in self.day_reports],
            [r.cash for r in self.day_reports],
        )


class BacktestRun:
    """
    Owns every piece of state for one backtest and drives it tick by tick.

    Args:
        series: Historical data to replay.
        strategy_params: Strategy decision parameters.
        params: Driver parameters.
        start_time: Where the clock starts (defaults to the first record).
        fill_policy: Fill gate (RandomFillPolicy from params by default).
        store: Purchase store handed to the strategy.

    Attributes:
        ledger, clock, gateway, strategy: The run's collaborators.
        day_reports: Reports of every closed-out day.
    """

    def __init__(
        self,
        series: HistoricalSeries,
        strategy_params: Optional[SlopeScalperParams] = None,
        params: Optional[BacktestParams] = None,
        start_time: Optional[datetime] = None,
        fill_policy: Optional[FillPolicy] = None,
        store: Optional[PurchaseStore] = None,
    ):
        self.series = series
        self.params = params or BacktestParams()

        if fill_policy is None:
            fill_policy = RandomFillPolicy(self.params.fill_probability, seed=self.params.seed)

        self.ledger = PortfolioLedger(self.params.starting_cash)
        self.clock = SimulatedClock(
            start_time or series.series_start_time,
            self.params.time_between_actions,
            self.params.session_hours,
        )
        self.gateway = SimulatedGateway(
            series,
            self.clock,
            self.ledger,
            OrderFillSimulator(fill_policy, self.ledger),
        )
        self.strategy = SlopeScalperStrategy(self.gateway, strategy_params, store)

        self.day_reports: list[DayReport] = []
        self._current_day: Optional[date] = None
        self._day_active = False
        self._day_symbol_start_price: Optional[Decimal] = None
        self._last_open_tick: Optional[datetime] = None

    def in_liquidation_window(self) -> bool:
        remaining = self.clock.time_until_close()
        return (
            self.clock.is_open
            and timedelta(0) < remaining < self.params.time_before_market_close_to_liquidate
        )

    def start_day(self) -> None:
        self._current_day = self.clock.now().date()
        self._day_active = True
        self._day_symbol_start_price = self.gateway.current_sample().close_price
        self.ledger.snapshot_day_start()
        logger.debug("trading day %s started with cash %s", self._current_day, self.ledger.cash)

    def step(self) -> bool:
        """
        Process one tick.

        Returns:
            False once the clock has passed the end of the series.
        """
        now = self.clock.advance()
        if now > self.series.series_end_time:
            return False
        if self._day_active and (not self.clock.is_open or now.date() != self._current_day):
            self.close_out_day()
        if not self.clock.is_open or now < self.series.series_start_time:
            return True

        if self._current_day != now.date():
            self.start_day()
        if not self._day_active:
            return True
        self._last_open_tick = now

        self.strategy.refresh_orders()

        if self.in_liquidation_window():
            symbol_end_price = self.gateway.current_sample().close_price
            self.strategy.close_out_trading()
            self.end_day(now, symbol_end_price)
            self.clock.fast_forward(self.params.time_before_market_close_to_liquidate)
            return True

        self.strategy.run(now)
        return True

    def end_day(self, timestamp: datetime, symbol_end_price: Decimal) -> DayReport:
        """Record the day report after positions were liquidated."""
        cash = self.ledger.snapshot_day_end()
        report = DayReport(
            timestamp=timestamp,
            orders_created=self.gateway.orders_created,
            cash_at_day_start=self.ledger.cash_at_day_start,
            cash=cash,
            profit_loss_percent=self.ledger.day_profit_loss_percent(),
            symbol_profit_loss_percent=profit_loss_percent(
                self._day_symbol_start_price, symbol_end_price
            ),
        )
        self.day_reports.append(report)
        if self.params.print_day_details:
            print(format_day_report(report))

        self.gateway.reset_order_ids()
        self._day_active = False
        return report

    def close_out_day(self) -> DayReport:
        """
        Close out a day whose session ended without a liquidation-window tick.

        Everything held is liquidated at the low of the day's last open tick.
        """
        logger.info("session ended with day %s still active, closing out", self._current_day)
        return self._liquidate_and_end_day(self._last_open_tick)

    def finish(self) -> None:
        """Liquidate whatever an unfinished last day still holds."""
        if self._day_active:
            self._liquidate_and_end_day(self.series.series_end_time)

    def _liquidate_and_end_day(self, timestamp: datetime) -> DayReport:
        last_sample = self.series.lookup(timestamp)
        self.gateway.close_out_at(last_sample)
        self.strategy.positions.clear()
        return self.end_day(timestamp, last_sample.close_price)

    def run(self) -> BacktestResult:
        logger.info("backtest is beginning, starting cash %s", self.ledger.cash)
        while self.step():
            pass
        self.finish()
        logger.info("backtest finished after %d trading days", len(self.day_reports))
        return self.result()

    def result(self) -> BacktestResult:
        result = BacktestResult(
            starting_cash=self.ledger.cash_at_session_start,
            ending_cash=self.ledger.cash,
            symbol_start_price=self.series.symbol_start_price,
            symbol_end_price=self.series.symbol_end_price,
            day_reports=list(self.day_reports),
        )
        result.statistics = summarize_day_end_cash(result.day_end_cash(), result.starting_cash)
        return result


def run_backtest(
    series: HistoricalSeries,
    strategy_params: Optional[SlopeScalperParams] = None,
    params: Optional[BacktestParams] = None,
    start_time: Optional[datetime] = None,
    fill_policy: Optional[FillPolicy] = None,
    store: Optional[PurchaseStore] = None,
) -> BacktestResult:
    """
    Run a full backtest and return its result.

    Raises:
        NoDataError: If the clock asks for a minute the series does not cover.
        InvalidOrderConfigError: If the strategy produced a malformed order.
    """
    run = BacktestRun(
        series,
        strategy_params=strategy_params,
        params=params,
        start_time=start_time,
        fill_policy=fill_policy,
        store=store,
    )
    return run.run()
