"""
Trading strategies that decide when to open and close positions.
"""
