"""
Simulated market clock, backtest driver loop, and text reports.

Replays historical minute bars through the same strategy code used live.
"""
