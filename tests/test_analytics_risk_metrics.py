"""
Tests for day-level performance statistics.
"""

from datetime import date
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from slope_trader.analytics.risk_metrics import (
    compute_drawdown_series,
    compute_hit_rate,
    compute_max_drawdown,
    compute_total_return,
    day_end_cash_series,
    summarize_day_end_cash,
)


def test_total_return():
    assert compute_total_return(pd.Series([100.0, 110.0])) == pytest.approx(0.10)
    assert np.isnan(compute_total_return(pd.Series([], dtype=float)))


def test_drawdown_series():
    drawdown = compute_drawdown_series(pd.Series([100.0, 120.0, 90.0, 130.0]))

    assert list(drawdown) == pytest.approx([0.0, 0.0, -0.25, 0.0])


def test_max_drawdown():
    assert compute_max_drawdown(pd.Series([100.0, 120.0, 90.0, 130.0])) == pytest.approx(-0.25)
    assert compute_max_drawdown(pd.Series([1.0, 2.0, 3.0])) == 0.0
    assert np.isnan(compute_max_drawdown(pd.Series([], dtype=float)))


def test_hit_rate_ignores_nan_and_flat_days():
    returns = pd.Series([0.01, -0.02, 0.0, np.nan, 0.03])

    assert compute_hit_rate(returns) == pytest.approx(0.5)
    assert np.isnan(compute_hit_rate(pd.Series([np.nan])))


def test_day_end_cash_series():
    series = day_end_cash_series(
        [date(2024, 1, 2), date(2024, 1, 3)],
        [Decimal("100010.5"), Decimal("99990")],
    )

    assert series.dtype == float
    assert series.index.name == "date"
    assert series.iloc[0] == 100010.5


def test_summarize_counts_first_day_against_starting_cash():
    cash = day_end_cash_series(
        [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)],
        [Decimal(101000), Decimal(99990), Decimal(100500)],
    )

    stats = summarize_day_end_cash(cash, Decimal(100000))

    assert stats.trading_days == 3
    assert stats.total_return == pytest.approx(0.005)
    assert stats.max_drawdown == pytest.approx(99990 / 101000 - 1)
    assert stats.winning_day_fraction == pytest.approx(2 / 3)


def test_summarize_without_days():
    stats = summarize_day_end_cash(day_end_cash_series([], []), Decimal(100000))

    assert stats.trading_days == 0
    assert stats.total_return == 0.0
    assert stats.max_drawdown == 0.0
    assert np.isnan(stats.winning_day_fraction)
