"""
slope_trader – intraday slope-signal trading strategy with a minute-bar backtester.
"""
