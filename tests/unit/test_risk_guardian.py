"""Tests for drawdown monitoring and the kill switch latch."""

from __future__ import annotations

import pytest

from forge.errors import OrderRejected, RejectReason
from forge.models import SecurityLevel
from forge.risk_guardian import KillswitchState, assess_drawdown

SYMBOL = "BTCUSDT"


def test_assess_drawdown_is_strict() -> None:
    assert assess_drawdown(8500.0, 10000.0, 0.15)[2] is False
    peak, dd, breached = assess_drawdown(8400.0, 10000.0, 0.15)
    assert peak == 10000.0
    assert dd == pytest.approx(0.16)
    assert breached is True


def test_assess_drawdown_raises_peak() -> None:
    peak, dd, breached = assess_drawdown(12000.0, 10000.0, 0.15)
    assert peak == 12000.0
    assert dd == 0.0
    assert breached is False


def test_drawdown_over_limit_latches_killswitch(engine) -> None:
    session = engine.session
    session.status = session.status.model_copy(update={"live_trading_enabled": True, "wallet_connected": True})
    engine.ledger.balance = 8400.0
    assessment = engine.guardian.evaluate()
    assert assessment.triggered_now is True
    assert assessment.killswitch_state is KillswitchState.TRIGGERED
    assert session.status.killswitch_active is True
    assert session.status.live_trading_enabled is False
    assert session.status.security_level is SecurityLevel.CRITICAL

    alerts = engine.guardian.drain_alerts()
    assert len(alerts) == 1
    assert "max drawdown exceeded" in alerts[0].message
    assert alerts[0].drawdown == pytest.approx(0.16)

    engine.tick(SYMBOL, 100.0)
    with pytest.raises(OrderRejected) as excinfo:
        engine.buy(SYMBOL, 10.0, 1)
    assert excinfo.value.reason is RejectReason.KILLSWITCH_ACTIVE


def test_exact_limit_does_not_trigger(engine) -> None:
    engine.ledger.balance = 8500.0
    assert engine.guardian.evaluate().triggered_now is False
    assert engine.guardian.killswitch_active is False


def test_killswitch_stays_latched_after_recovery(engine) -> None:
    engine.ledger.balance = 8000.0
    engine.guardian.evaluate()
    engine.ledger.balance = 13000.0
    assessment = engine.guardian.evaluate()
    assert assessment.triggered_now is False
    assert assessment.peak_balance == 13000.0
    assert engine.guardian.killswitch_active is True
    engine.tick(SYMBOL, 100.0)
    assert engine.session.status.killswitch_active is True
    # Only the first breach raises an alert.
    assert len(engine.guardian.drain_alerts()) == 1


def test_killswitch_survives_ticks_and_liquidations(engine) -> None:
    engine.tick(SYMBOL, 100.0)
    engine.buy(SYMBOL, 1000.0, 10)
    engine.ledger.balance -= 1000.0
    engine.guardian.evaluate()
    assert engine.guardian.killswitch_active is True
    # Existing positions still react to prices.
    diff = engine.tick(SYMBOL, 90.0)
    assert len(diff.liquidations) == 1
    assert engine.guardian.killswitch_active is True


def test_peak_tracks_new_highs(engine) -> None:
    engine.ledger.balance = 11000.0
    engine.guardian.evaluate()
    assert engine.ledger.peak_balance == 11000.0
    engine.ledger.balance = 10000.0
    engine.guardian.evaluate()
    assert engine.ledger.peak_balance == 11000.0


def test_margin_reservation_counts_toward_drawdown(engine) -> None:
    engine.tick(SYMBOL, 100.0)
    engine.buy(SYMBOL, 1600.0, 2)
    assert engine.ledger.balance == pytest.approx(8400.0)
    assert engine.guardian.killswitch_active is True


def test_reset_killswitch_rebases_peak(engine) -> None:
    engine.ledger.balance = 8000.0
    engine.guardian.evaluate()
    engine.guardian.reset_killswitch()
    assert engine.guardian.state is KillswitchState.ARMED
    assert engine.ledger.peak_balance == 8000.0
    assert engine.session.status.security_level is SecurityLevel.CALIBRATING
    assert engine.guardian.evaluate().triggered_now is False
    engine.tick(SYMBOL, 100.0)
    engine.buy(SYMBOL, 100.0, 1)


def test_reset_without_trigger_is_noop(engine) -> None:
    engine.ledger.balance = 9000.0
    engine.guardian.reset_killswitch()
    assert engine.ledger.peak_balance == 10000.0
    assert engine.session.status.security_level is SecurityLevel.CRITICAL
