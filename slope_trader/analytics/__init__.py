"""
Summary statistics over day-level backtest results.
"""
