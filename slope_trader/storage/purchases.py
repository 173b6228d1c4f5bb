"""
Purchase (position) persistence collaborators.

**Conceptual**: Live trading stores every purchase so a restarted process can
pick up today's open positions. The strategy calls insert/update on whatever
store it is given. The backtest does not need persistence, so it plugs in
NullPurchaseStore and the same strategy code runs unchanged.

The relational store used in live trading lives outside this package; anything
matching PurchaseStore can be injected.
"""

from typing import Protocol

from slope_trader.execution.orders import Position


class PurchaseStore(Protocol):

    def insert(self, position: Position) -> None:
        ...

    def update(self, position: Position) -> None:
        ...

    def list_purchases(self) -> list[Position]:
        ...


class NullPurchaseStore:
    """No-op store for backtests."""

    def insert(self, position: Position) -> None:
        return None

    def update(self, position: Position) -> None:
        return None

    def list_purchases(self) -> list[Position]:
        return []


class InMemoryPurchaseStore:
    """
    Dict-backed store that assigns sequential IDs on insert.

    Useful for inspecting what a strategy persisted (tests, dry runs).
    """

    def __init__(self):
        self._positions: dict[int, Position] = {}
        self._next_id = 1
        self.update_count = 0

    def insert(self, position: Position) -> None:
        position.id = self._next_id
        self._positions[position.id] = position
        self._next_id += 1

    def update(self, position: Position) -> None:
        if position.id is None or position.id not in self._positions:
            raise KeyError(f"Cannot update purchase that was never inserted: {position!r}")
        self._positions[position.id] = position
        self.update_count += 1

    def list_purchases(self) -> list[Position]:
        return list(self._positions.values())
