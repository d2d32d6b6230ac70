"""End-to-end tests for the trading controller.

Ticks are pushed through ``on_tick`` exactly as the price feed does and
the published events are captured with ``FakeBus``.
"""

from __future__ import annotations

import asyncio

import pytest

from forge.config import EngineConfig
from forge.controller import SNAPSHOT_HISTORY_LIMIT, TradingController
from forge.errors import OrderRejected, RejectReason, StatusChangeRejected
from forge.models import OrderSide, OrderStatus, OrderType, PriceTick, SecurityLevel, TradingMode
from tests.helpers.fake_bus import FakeBus

SYMBOL = "BTCUSDT"


def _controller() -> tuple:
    bus = FakeBus()
    return TradingController(EngineConfig(initial_balance=10_000.0), event_bus=bus), bus


@pytest.mark.asyncio  # type: ignore
async def test_on_tick_only_enqueues() -> None:
    controller, bus = _controller()
    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    controller.on_tick(PriceTick(symbol=SYMBOL, price=101.0))
    assert controller.queued_ticks == 2
    assert controller.session.mark_price(SYMBOL) is None
    assert bus.events == []
    await controller.drain()
    assert controller.queued_ticks == 0
    # Applied in arrival order, so the last tick wins.
    assert controller.session.mark_price(SYMBOL) == 101.0
    assert bus.kinds() == ["account_update", "account_update"]


@pytest.mark.asyncio  # type: ignore
async def test_run_consumes_ticks_in_order() -> None:
    controller, bus = _controller()
    task = asyncio.create_task(controller.run())
    for price in (100.0, 102.0, 99.0):
        controller.on_tick(PriceTick(symbol=SYMBOL, price=price))
    await asyncio.sleep(0.05)
    task.cancel()
    snapshots = bus.of_type("account_update")
    assert len(snapshots) == 3
    assert controller.session.mark_price(SYMBOL) == 99.0


@pytest.mark.asyncio  # type: ignore
async def test_scenario_open_and_liquidate() -> None:
    controller, bus = _controller()
    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    await controller.drain()
    record = await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1000.0, 10)
    assert record.amount == pytest.approx(100.0)

    snapshot = bus.of_type("account_update")[-1]
    assert snapshot["balance"] == pytest.approx(9000.0)
    assert snapshot["positions"][0]["liquidation_price"] == pytest.approx(90.5)

    controller.on_tick(PriceTick(symbol=SYMBOL, price=90.0))
    await controller.drain()
    kinds = bus.kinds()
    # The liquidation event precedes the snapshot that reflects it.
    assert kinds[-2:] == ["liquidation", "account_update"]
    liquidation = bus.of_type("liquidation")[0]
    assert liquidation["status"] == "LIQUIDATED"
    assert liquidation["reserved_value"] == pytest.approx(1000.0)
    final = bus.of_type("account_update")[-1]
    assert final["positions"] == []
    assert final["balance"] == pytest.approx(9000.0)
    assert final["history"][0]["status"] == "LIQUIDATED"


@pytest.mark.asyncio  # type: ignore
async def test_killswitch_publishes_risk_alert_and_blocks_orders() -> None:
    controller, bus = _controller()
    await controller.connect_wallet()
    await controller.set_trading_mode(TradingMode.LIVE)
    await controller.enable_live_trading()
    assert controller.session.status.live_trading_enabled is True

    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    await controller.drain()
    # Reserving 1600 of margin takes the balance to 8400, a 16% drawdown.
    await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1600.0, 2)

    alerts = bus.of_type("risk_alert")
    assert len(alerts) == 1
    assert alerts[0]["kill_switch"] is True
    assert alerts[0]["drawdown"] == pytest.approx(0.16)
    status = bus.of_type("account_update")[-1]["status"]
    assert status["killswitch_active"] is True
    assert status["live_trading_enabled"] is False

    with pytest.raises(OrderRejected) as excinfo:
        await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 10.0, 1)
    assert excinfo.value.reason is RejectReason.KILLSWITCH_ACTIVE
    with pytest.raises(StatusChangeRejected):
        await controller.enable_live_trading()

    # Closes go through the same admission check.
    with pytest.raises(OrderRejected):
        await controller.close_position(SYMBOL)

    controller.on_tick(PriceTick(symbol=SYMBOL, price=150.0))
    await controller.drain()
    assert controller.session.status.killswitch_active is True

    await controller.reset_killswitch()
    assert controller.session.status.killswitch_active is False
    assert controller.session.status.security_level is SecurityLevel.CALIBRATING
    await controller.close_position(SYMBOL)
    # 32 units closed 50 higher, minus 0.1% of 4800 notional.
    assert controller.session.ledger.balance == pytest.approx(8400.0 + 1600.0 + 1600.0 - 4.8)


@pytest.mark.asyncio  # type: ignore
async def test_limit_order_lifecycle() -> None:
    controller, bus = _controller()
    controller.on_tick(PriceTick(symbol="ETHUSDT", price=100.0))
    await controller.drain()
    order = await controller.place_order("ETHUSDT", OrderSide.BUY, OrderType.LIMIT, 500.0, 5, limit_price=95.0)
    assert bus.of_type("account_update")[-1]["pending_orders"][0]["id"] == order.id

    cancelled = await controller.cancel_order(order.id)
    assert cancelled.status is OrderStatus.CANCELLED
    snapshot = bus.of_type("account_update")[-1]
    assert snapshot["pending_orders"] == []
    assert snapshot["balance"] == pytest.approx(10_000.0)

    order = await controller.place_order("ETHUSDT", OrderSide.BUY, OrderType.LIMIT, 500.0, 5, limit_price=95.0)
    controller.on_tick(PriceTick(symbol="ETHUSDT", price=94.0))
    await controller.drain()
    snapshot = bus.of_type("account_update")[-1]
    assert snapshot["pending_orders"] == []
    assert snapshot["positions"][0]["avg_entry_price"] == 95.0
    assert snapshot["history"][0]["id"] == order.id
    assert snapshot["history"][0]["status"] == "FILLED"


@pytest.mark.asyncio  # type: ignore
async def test_balance_is_conserved_across_round_trips() -> None:
    controller, _ = _controller()
    start = controller.session.ledger.balance
    prices = [100.0, 104.0, 98.0, 101.0, 107.0]
    for i, price in enumerate(prices):
        controller.on_tick(PriceTick(symbol=SYMBOL, price=price))
        await controller.drain()
        if i % 2 == 0:
            await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 200.0, 3)
        else:
            await controller.close_position(SYMBOL)
    await controller.close_position(SYMBOL)

    sells = [
        o
        for o in controller.session.ledger.history
        if o.side is OrderSide.SELL and o.status is OrderStatus.FILLED
    ]
    buys = [
        o
        for o in controller.session.ledger.history
        if o.side is OrderSide.BUY and o.status is OrderStatus.FILLED
    ]
    realized = sum((s.price - b.price) * b.amount for s, b in zip(reversed(sells), reversed(buys)))
    fees = sum(o.fee for o in sells)
    assert controller.session.positions.all() == []
    assert controller.session.ledger.balance == pytest.approx(start + realized - fees)


@pytest.mark.asyncio  # type: ignore
async def test_status_transitions() -> None:
    controller, _ = _controller()
    with pytest.raises(StatusChangeRejected):
        await controller.enable_live_trading()

    await controller.connect_wallet()
    await controller.enable_live_trading()
    assert controller.session.status.live_trading_enabled is True

    await controller.set_trading_mode(TradingMode.PAPER)
    assert controller.session.status.live_trading_enabled is False

    await controller.enable_live_trading()
    await controller.disconnect_wallet()
    status = controller.session.status
    assert status.wallet_connected is False
    assert status.live_trading_enabled is False


@pytest.mark.asyncio  # type: ignore
async def test_safety_score_is_clamped() -> None:
    controller, _ = _controller()
    await controller.update_safety_score(140)
    assert controller.session.status.safety_score == 100.0
    assert controller.session.status.security_level is SecurityLevel.SECURE
    await controller.update_safety_score(-3)
    assert controller.session.status.safety_score == 0.0
    assert controller.session.status.security_level is SecurityLevel.CALIBRATING


@pytest.mark.asyncio  # type: ignore
async def test_snapshot_history_is_bounded() -> None:
    controller, bus = _controller()
    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    await controller.drain()
    for _ in range(SNAPSHOT_HISTORY_LIMIT + 5):
        order = await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.LIMIT, 1.0, 1, limit_price=50.0)
        await controller.cancel_order(order.id)
    snapshot = bus.of_type("account_update")[-1]
    assert len(snapshot["history"]) == SNAPSHOT_HISTORY_LIMIT
    assert len(controller.session.ledger.history) == SNAPSHOT_HISTORY_LIMIT + 5


@pytest.mark.asyncio  # type: ignore
async def test_controller_without_bus() -> None:
    controller = TradingController(EngineConfig())
    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    await controller.drain()
    record = await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 100.0, 1)
    assert record.status is OrderStatus.FILLED


@pytest.mark.asyncio  # type: ignore
async def test_reset_account_starts_fresh() -> None:
    controller, bus = _controller()
    controller.on_tick(PriceTick(symbol=SYMBOL, price=100.0))
    await controller.drain()
    await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1000.0, 10)
    await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.LIMIT, 1000.0, 10, limit_price=90.0)
    assert controller.session.status.killswitch_active is True

    await controller.reset_account(5000.0)
    snapshot = bus.of_type("account_update")[-1]
    assert snapshot["balance"] == 5000.0
    assert snapshot["peak_balance"] == 5000.0
    assert snapshot["positions"] == []
    assert snapshot["pending_orders"] == []
    assert snapshot["history"] == []
    assert snapshot["status"]["killswitch_active"] is False
    # Prices survive the reset, so trading resumes immediately.
    record = await controller.place_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 100.0, 1)
    assert record.status is OrderStatus.FILLED

    await controller.reset_account()
    assert controller.session.ledger.balance == 10_000.0
