"""
Typed configuration loaded from the environment (.env supported).

Holds strategy parameters, backtest parameters, and live brokerage credentials.
"""
