"""
Order model, portfolio ledger, and order-fill simulation.

Everything needed to turn a pending order plus a price sample into a fill
and a cash/share update.
"""
