"""
Risk guardian.

This module defines the :class:`RiskGuardian` used by the controller
after every balance change.  It tracks the balance high-water mark,
derives the drawdown from it and latches a kill switch once the
drawdown exceeds the configured maximum (15% by default).

The kill switch is a one-way latch: ``ARMED -> TRIGGERED``.  Nothing
in the engine clears it automatically, even if the balance recovers.
``reset_killswitch`` exists as an explicit administrative override.
While latched, the order router refuses new orders; resting orders
and open positions keep reacting to ticks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from .margin import drawdown as compute_drawdown
from .models import SecurityLevel
from .session import TradingSession

logger = logging.getLogger(__name__)


class KillswitchState(str, Enum):
    ARMED = "ARMED"
    TRIGGERED = "TRIGGERED"


@dataclass(frozen=True)
class RiskAssessment:
    balance: float
    peak_balance: float
    drawdown: float
    killswitch_state: KillswitchState
    # True only for the evaluation that flipped the latch.
    triggered_now: bool = False


@dataclass(frozen=True)
class RiskAlert:
    message: str
    drawdown: float
    balance: float
    peak_balance: float


def assess_drawdown(balance: float, peak_balance: float, max_drawdown: float) -> Tuple[float, float, bool]:
    """Pure drawdown evaluation.

    Returns ``(new_peak, drawdown, breached)`` where ``breached`` is true
    when the drawdown is strictly greater than ``max_drawdown``.
    """
    peak = max(peak_balance, balance)
    dd = compute_drawdown(peak, balance)
    return peak, dd, dd > max_drawdown


class RiskGuardian:
    """Encapsulates drawdown monitoring and the kill switch latch."""

    def __init__(self, session: TradingSession) -> None:
        self.session = session
        self.max_drawdown: float = session.config.max_drawdown
        # Alerts raised since the last drain; the controller publishes them.
        self._alerts: List[RiskAlert] = []

    @property
    def state(self) -> KillswitchState:
        return KillswitchState.TRIGGERED if self.session.status.killswitch_active else KillswitchState.ARMED

    @property
    def killswitch_active(self) -> bool:
        return self.session.status.killswitch_active

    def evaluate(self) -> RiskAssessment:
        """Re-evaluate drawdown against the current ledger balance."""
        ledger = self.session.ledger
        peak, dd, breached = assess_drawdown(ledger.balance, ledger.peak_balance, self.max_drawdown)
        ledger.peak_balance = peak
        triggered_now = False
        if breached and not self.session.status.killswitch_active:
            self._trigger(dd)
            triggered_now = True
        return RiskAssessment(
            balance=ledger.balance,
            peak_balance=peak,
            drawdown=dd,
            killswitch_state=self.state,
            triggered_now=triggered_now,
        )

    def _trigger(self, dd: float) -> None:
        ledger = self.session.ledger
        self.session.status = self.session.status.model_copy(
            update={
                "killswitch_active": True,
                "live_trading_enabled": False,
                "security_level": SecurityLevel.CRITICAL,
            }
        )
        message = (
            f"RISK GUARDIAN TRIGGERED: max drawdown exceeded "
            f"({dd:.2%} > {self.max_drawdown:.0%}). Trading halted."
        )
        logger.error(
            "Drawdown %.4f exceeds limit %.4f (balance=%.2f peak=%.2f); activating kill switch",
            dd,
            self.max_drawdown,
            ledger.balance,
            ledger.peak_balance,
        )
        self._alerts.append(
            RiskAlert(message=message, drawdown=dd, balance=ledger.balance, peak_balance=ledger.peak_balance)
        )

    def drain_alerts(self) -> List[RiskAlert]:
        alerts, self._alerts = self._alerts, []
        return alerts

    def reset_killswitch(self) -> None:
        """Administrative override: clear the latch and re-base the peak.

        The peak is moved to the current balance so that the drawdown which
        caused the trigger does not re-latch on the very next evaluation.
        """
        if not self.session.status.killswitch_active:
            return
        ledger = self.session.ledger
        ledger.peak_balance = ledger.balance
        self.session.status = self.session.status.model_copy(
            update={"killswitch_active": False, "security_level": SecurityLevel.CALIBRATING}
        )
        logger.warning("Kill switch reset by operator; peak re-based to %.2f", ledger.balance)
