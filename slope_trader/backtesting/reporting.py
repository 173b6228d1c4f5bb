"""
Plain-text backtest reports.

Cash is shown with 2 decimals and percentages with 3, matching how the
trading desk reads these numbers. All arithmetic happens upstream in Decimal;
this module only formats.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

import numpy as np

# engine.py prints day reports through this module
if TYPE_CHECKING:
    from slope_trader.backtesting.engine import BacktestResult, DayReport

CENTS = Decimal("0.01")
THOUSANDTHS = Decimal("0.001")


def _cash(value: Decimal) -> str:
    return str(value.quantize(CENTS))


def _pct(value: Decimal) -> str:
    return f"{value.quantize(THOUSANDTHS)}%"


def _ratio_pct(value: float) -> str:
    if value is None or np.isnan(value):
        return "n/a"
    return f"{value * 100:.3f}%"


def format_day_report(report: "DayReport") -> str:
    """Multi-line summary of one trading day's close-out."""
    lines = [
        f"Time: {report.timestamp}",
        f"Orders created: {report.orders_created}",
        f"Profit/Loss - Day: {_pct(report.profit_loss_percent)}",
        f"Symbol Profit/Loss - Day: {_pct(report.symbol_profit_loss_percent)}",
        f"Algo Benefit - Day: {_pct(report.algorithm_benefit)}",
        f"Cash: {_cash(report.cash)}",
    ]
    return "\n".join(lines) + "\n"


def format_summary(result: "BacktestResult") -> str:
    """End-of-run summary: cash, strategy vs buy-and-hold, day statistics."""
    stats = result.statistics
    lines = [
        f"Starting Cash: {_cash(result.starting_cash)}",
        f"Ending Cash: {_cash(result.ending_cash)}",
        f"Profit/Loss: {_pct(result.profit_loss_percent)}",
        f"Symbol Profit/Loss: {_pct(result.symbol_profit_loss_percent)}",
        f"Algo Benefit: {_pct(result.algorithm_benefit)}",
        f"Trading Days: {stats.trading_days}",
        f"Max Drawdown (day-end cash): {_ratio_pct(stats.max_drawdown)}",
        f"Winning Days: {_ratio_pct(stats.winning_day_fraction)}",
    ]
    return "\n".join(lines)
