"""
Signal math and profit/loss arithmetic.

This module holds the small numerical kernels shared by the strategy and the
backtest reports: the least-squares trend slope over recent closes, the
strict-increase test, and exact decimal percentage profit/loss.
"""

from decimal import Decimal
from typing import Sequence

import numpy as np
from scipy import stats


HUNDRED = Decimal(100)


def compute_trend_slope(closes: Sequence[Decimal | float]) -> float:
    """
    Least-squares slope of close price against sample index.

    **Conceptual**: The slope answers "how many dollars per bar has the price
    been climbing over the window?" A steep positive slope over the last few
    one-minute bars is the buy trigger.

    **Mathematical**: Fit y = a + m * x with x = 0, 1, ..., n-1 (oldest first)
    and y the closes. The slope is
        m = (n * Σxy - Σx * Σy) / (n * Σx² - (Σx)²)
    computed here with scipy.stats.linregress.

    **Edge cases**:
      - Flat closes give slope 0.0.
      - Fewer than two closes raise ValueError (slope undefined).

    Args:
        closes: Close prices in chronological order (oldest first).

    Returns:
        Slope in price units per bar.
    """
    if len(closes) < 2:
        raise ValueError(f"Need at least 2 closes to compute a slope, got {len(closes)}.")

    x = np.arange(len(closes))
    y = np.array([float(c) for c in closes])

    result = stats.linregress(x, y)
    return float(result.slope)


def all_sequential_increases(closes: Sequence[Decimal | float]) -> bool:
    """True if each close is strictly greater than the one before it."""
    return all(later > earlier for earlier, later in zip(closes, closes[1:]))


def profit_loss_percent(start: Decimal, end: Decimal) -> Decimal:
    """
    Percentage change from start to end, in exact decimal arithmetic.

        P/L % = (end - start) / start * 100

    Raises:
        ValueError: If start is zero.
    """
    if start == 0:
        raise ValueError("Cannot compute profit/loss percent from a zero start value.")
    return (end - start) / start * HUNDRED
