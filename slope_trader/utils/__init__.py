"""
Shared helpers: market-time handling, slope math, and logging setup.
"""
