"""Open positions keyed by symbol, at most one per symbol."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from .models import Position


class PositionBook:
    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}

    def get(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def put(self, position: Position) -> None:
        # Position validation already guarantees amount > 0.
        self._positions[position.symbol] = position

    def remove(self, symbol: str) -> Optional[Position]:
        return self._positions.pop(symbol, None)

    def all(self) -> List[Position]:
        return list(self._positions.values())

    def clear(self) -> None:
        self._positions.clear()
