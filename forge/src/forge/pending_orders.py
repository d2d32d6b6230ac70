"""
Resting LIMIT and STOP_MARKET orders awaiting a triggering tick.

Orders are kept in arrival order; the matching engine scans them in
that order so that two orders triggered by the same tick fill
first-in, first-out.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterator, List, Optional

from .models import TradeOrder


class PendingOrderSet:
    def __init__(self) -> None:
        self._orders: "OrderedDict[str, TradeOrder]" = OrderedDict()

    def add(self, order: TradeOrder) -> None:
        if order.id in self._orders:
            raise ValueError(f"Duplicate pending order id {order.id}")
        self._orders[order.id] = order

    def get(self, order_id: str) -> Optional[TradeOrder]:
        return self._orders.get(order_id)

    def remove(self, order_id: str) -> Optional[TradeOrder]:
        return self._orders.pop(order_id, None)

    def for_symbol(self, symbol: str) -> List[TradeOrder]:
        return [o for o in self._orders.values() if o.symbol == symbol]

    def all(self) -> List[TradeOrder]:
        return list(self._orders.values())

    def __iter__(self) -> Iterator[TradeOrder]:
        # Iterate over a copy; the engine removes orders while scanning.
        return iter(list(self._orders.values()))

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def clear(self) -> None:
        self._orders.clear()
