"""
Trading session: the single container of mutable engine state.

A :class:`TradingSession` is created by the controller and handed by
reference to the order router, matching engine and risk guardian.
There is no module-level state; two sessions in one process are fully
independent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import EngineConfig
from .ledger import AccountLedger
from .models import AccountSnapshot, PriceTick, SystemStatus
from .pending_orders import PendingOrderSet
from .position_book import PositionBook
from .risk_metrics import compute_risk_metrics


@dataclass
class TradingSession:
    config: EngineConfig
    ledger: AccountLedger = field(init=False)
    positions: PositionBook = field(default_factory=PositionBook)
    pending: PendingOrderSet = field(default_factory=PendingOrderSet)
    status: SystemStatus = field(default_factory=SystemStatus)
    market: Dict[str, PriceTick] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.ledger = AccountLedger(self.config.initial_balance)

    def mark_price(self, symbol: str) -> Optional[float]:
        tick = self.market.get(symbol)
        return tick.price if tick is not None else None

    def snapshot(self, history_limit: Optional[int] = None) -> AccountSnapshot:
        history = self.ledger.history
        if history_limit is not None:
            history = history[:history_limit]
        positions = self.positions.all()
        return AccountSnapshot(
            balance=self.ledger.balance,
            peak_balance=self.ledger.peak_balance,
            positions=positions,
            pending_orders=self.pending.all(),
            history=history,
            status=self.status.model_copy(),
            risk=compute_risk_metrics(self.ledger.balance, self.ledger.peak_balance, positions),
        )
