"""
Account ledger: margin balance, high-water mark and order history.

Only the order router and the matching engine write to the ledger.
Balance moves in exactly three ways:

* ``reserve`` at BUY admission (debit),
* ``release`` when a resting BUY is cancelled (credit),
* ``settle_close`` when a SELL fill returns margin plus PnL minus fee.

Liquidations only append to history; the margin stays forfeited.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from .models import OrderStatus, TradeOrder

logger = logging.getLogger(__name__)


class AccountLedger:
    """Balance, peak balance and most-recent-first order history."""

    def __init__(self, initial_balance: float) -> None:
        self.initial_balance = initial_balance
        self.balance: float = initial_balance
        self.peak_balance: float = initial_balance
        self._history: List[TradeOrder] = []

    @property
    def history(self) -> List[TradeOrder]:
        return list(self._history)

    def reserve(self, amount: float) -> None:
        self.balance -= amount
        logger.debug("Reserved %.4f margin, balance=%.4f", amount, self.balance)

    def release(self, amount: float) -> None:
        self.balance += amount
        logger.debug("Released %.4f margin, balance=%.4f", amount, self.balance)

    def settle_close(self, margin_released: float, pnl_realized: float, fee: float) -> float:
        """Credit a closing fill and return the net amount credited."""
        credit = margin_released + pnl_realized - fee
        self.balance += credit
        logger.debug(
            "Settled close: margin=%.4f pnl=%.4f fee=%.4f balance=%.4f",
            margin_released,
            pnl_realized,
            fee,
            self.balance,
        )
        return credit

    def record(self, order: TradeOrder) -> None:
        self._history.insert(0, order)

    def iter_history(self, status: Optional[OrderStatus] = None) -> Iterator[TradeOrder]:
        for order in self._history:
            if status is None or order.status is status:
                yield order

    def reset(self, balance: Optional[float] = None) -> None:
        """Start a fresh account; the only way the peak may go down."""
        self.balance = self.initial_balance if balance is None else balance
        self.peak_balance = self.balance
        self._history.clear()
        logger.info("Ledger reset, balance=%.2f", self.balance)
