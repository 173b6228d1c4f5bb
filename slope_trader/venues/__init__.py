"""
Trading gateways (simulated and live) behind one capability protocol.

Strategies talk to a TradingGateway; the backtest plugs in SimulatedGateway,
live trading plugs in LiveGateway.
"""
