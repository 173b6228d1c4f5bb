"""
Day-level performance statistics for backtest runs.

The backtest produces one cash value per trading day (cash after the
end-of-day liquidation, so every position is flat). Treating that series as
an equity curve gives a few cheap, honest statistics to print next to the
headline profit/loss: total return, the worst peak-to-trough drop, and how
often a day ended in profit.

All functions take pandas Series of floats indexed by date.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

import numpy as np
import pandas as pd


def compute_total_return(equity_curve: pd.Series) -> float:
    """
    Overall return from the first value to the last.

    **Mathematical**:
        Total Return = (E_T / E_0) - 1

    Args:
        equity_curve: Cash (or equity) values, oldest first. Must start positive.

    Returns:
        Total return as a decimal (e.g., 0.01 = 1% gain). NaN for an empty series.
    """
    if len(equity_curve) == 0:
        return np.nan
    return float(equity_curve.iloc[-1] / equity_curve.iloc[0] - 1.0)


def compute_drawdown_series(equity_curve: pd.Series) -> pd.Series:
    """
    Percentage drop from the running peak at every point.

    **Mathematical**: At each t,
        drawdown_t = (equity_t / max(equity_0..equity_t)) - 1

    Values are <= 0: zero at a new high, negative while under water.
    """
    cumulative_peak = equity_curve.cummax()
    return (equity_curve / cumulative_peak) - 1.0


def compute_max_drawdown(equity_curve: pd.Series) -> float:
    """
    Worst peak-to-trough loss (a value <= 0, e.g. -0.02 for a 2% drawdown).

    Monotonically non-decreasing cash gives 0.0; an empty series gives NaN.
    """
    if len(equity_curve) == 0:
        return np.nan
    return float(compute_drawdown_series(equity_curve).min())


def compute_hit_rate(returns: pd.Series) -> float:
    """
    Fraction of periods with a strictly positive return.

    NaNs are dropped first. A flat day (return exactly 0) is not a win.

    Returns:
        Value in [0, 1], or NaN if no periods remain.
    """
    clean_returns = returns.dropna()
    if len(clean_returns) == 0:
        return np.nan
    return float((clean_returns > 0).sum() / len(clean_returns))


def day_end_cash_series(dates: Sequence, cash_values: Sequence[Decimal]) -> pd.Series:
    """Build a float Series of day-end cash indexed by trading date."""
    return pd.Series(
        [float(c) for c in cash_values],
        index=pd.Index(list(dates), name="date"),
        name="cash",
        dtype=float,
    )


@dataclass(frozen=True)
class DayStatistics:
    """
    Summary of a day-end cash curve.

    Attributes:
        trading_days: Days that reached a close-out.
        total_return: Return from starting cash to the last day-end cash.
        max_drawdown: Worst drop of the day-end cash curve (<= 0).
        winning_day_fraction: Share of days whose cash rose.
    """
    trading_days: int
    total_return: float
    max_drawdown: float
    winning_day_fraction: float


def summarize_day_end_cash(day_end_cash: pd.Series, starting_cash: Decimal) -> DayStatistics:
    """
    Compute DayStatistics for a run.

    The starting cash is prepended to the curve so the first day's result
    counts toward returns, drawdown and the win fraction.

    Args:
        day_end_cash: Cash after each day's close-out, oldest first.
        starting_cash: Cash when the run began.
    """
    curve = pd.concat(
        [pd.Series([float(starting_cash)], dtype=float), day_end_cash.reset_index(drop=True)],
        ignore_index=True,
    )
    daily_returns = curve.pct_change().iloc[1:]
    return DayStatistics(
        trading_days=len(day_end_cash),
        total_return=compute_total_return(curve),
        max_drawdown=compute_max_drawdown(curve),
        winning_day_fraction=compute_hit_rate(daily_returns),
    )
