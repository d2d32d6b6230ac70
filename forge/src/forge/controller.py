"""
Trading controller.

The controller is the single owner of a :class:`TradingSession`.  It
wires the order router, matching engine and risk guardian to that
session and serialises every mutation:

* The price feed callback (:meth:`TradingController.on_tick`) only
  enqueues the tick.  :meth:`TradingController.run` drains the queue
  and applies ticks strictly in arrival order, one at a time.
* User actions (place, cancel, close, status changes) are plain
  synchronous mutations on the same event loop, followed by a publish.

After every mutation the controller pushes an ``account_update``
snapshot onto the event bus.  Kill switch triggers are published on
``risk_alert`` and forced closures on ``liquidation``.

Usage:

    bus = EventBus()
    controller = TradingController(EngineConfig.from_env(), event_bus=bus)
    unsubscribe = feed.subscribe(controller.on_tick)
    asyncio.create_task(controller.run())
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .config import EngineConfig
from .errors import StatusChangeRejected
from .matching_engine import MatchingEngine
from .models import (
    AccountSnapshot,
    OrderSide,
    OrderType,
    PriceTick,
    SecurityLevel,
    TickDiff,
    TradeOrder,
    TradingMode,
)
from .order_router import OrderRouter
from .risk_guardian import RiskGuardian
from .session import TradingSession

logger = logging.getLogger(__name__)

# Number of history records carried in each published snapshot.
SNAPSHOT_HISTORY_LIMIT = 50


class TradingController:
    def __init__(self, config: Optional[EngineConfig] = None, event_bus: Optional[Any] = None) -> None:
        self.config = config or EngineConfig.from_env()
        self.session = TradingSession(self.config)
        self.guardian = RiskGuardian(self.session)
        self.engine = MatchingEngine(self.session, self.guardian)
        self.router = OrderRouter(self.session, self.engine, self.guardian)
        self.event_bus = event_bus
        self._ticks: asyncio.Queue[PriceTick] = asyncio.Queue()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def on_tick(self, tick: PriceTick) -> None:
        """Price feed callback; never processes inline."""
        self._ticks.put_nowait(tick)

    @property
    def queued_ticks(self) -> int:
        return self._ticks.qsize()

    def apply_tick(self, tick: PriceTick) -> TickDiff:
        """Synchronously apply one tick and re-evaluate risk."""
        diff = self.engine.process_tick(tick)
        self.guardian.evaluate()
        return diff

    async def handle_tick(self, tick: PriceTick) -> TickDiff:
        diff = self.apply_tick(tick)
        for record in diff.liquidations:
            await self._publish("liquidation", record.model_dump(mode="json"))
        await self.publish_snapshot()
        return diff

    async def run(self) -> None:
        """Consume queued ticks forever, one at a time, in arrival order."""
        logger.info("Trading controller started (balance=%.2f)", self.session.ledger.balance)
        while True:
            tick = await self._ticks.get()
            try:
                await self.handle_tick(tick)
            except Exception:
                logger.exception("Failed to process tick for %s", tick.symbol)
                raise
            finally:
                self._ticks.task_done()

    async def drain(self) -> None:
        """Apply every queued tick; used by replays and tests."""
        while not self._ticks.empty():
            tick = self._ticks.get_nowait()
            try:
                await self.handle_tick(tick)
            finally:
                self._ticks.task_done()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        margin_amount: float,
        leverage: int,
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> TradeOrder:
        order = self.router.submit(symbol, side, order_type, margin_amount, leverage, limit_price, stop_price)
        await self.publish_snapshot()
        return order

    async def close_position(
        self,
        symbol: str,
        order_type: OrderType = OrderType.MARKET,
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> TradeOrder:
        order = self.router.close_position(symbol, order_type, limit_price, stop_price)
        await self.publish_snapshot()
        return order

    async def cancel_order(self, order_id: str) -> TradeOrder:
        record = self.router.cancel(order_id)
        await self.publish_snapshot()
        return record

    async def reset_killswitch(self) -> None:
        self.guardian.reset_killswitch()
        await self.publish_snapshot()

    async def reset_account(self, balance: Optional[float] = None) -> None:
        """Start a fresh paper account.

        Positions and resting orders are dropped without settlement, the
        ledger restarts at ``balance`` (the configured initial balance by
        default) and the kill switch is re-armed.  Market prices are kept.
        """
        self.session.positions.clear()
        self.session.pending.clear()
        self.session.ledger.reset(balance)
        self.guardian.drain_alerts()
        self._update_status(killswitch_active=False, security_level=SecurityLevel.CALIBRATING)
        logger.warning("Account reset; balance=%.2f", self.session.ledger.balance)
        await self.publish_snapshot()

    # ------------------------------------------------------------------
    # System status
    # ------------------------------------------------------------------
    def _update_status(self, **changes: Any) -> None:
        self.session.status = self.session.status.model_copy(update=changes)

    async def connect_wallet(self) -> None:
        self._update_status(wallet_connected=True)
        await self.publish_snapshot()

    async def disconnect_wallet(self) -> None:
        self._update_status(wallet_connected=False, live_trading_enabled=False)
        logger.info("Wallet disconnected; live trading disabled")
        await self.publish_snapshot()

    async def set_trading_mode(self, mode: TradingMode) -> None:
        mode = TradingMode(mode)
        changes: dict = {"trading_mode": mode}
        if mode is TradingMode.PAPER:
            changes["live_trading_enabled"] = False
        self._update_status(**changes)
        await self.publish_snapshot()

    async def enable_live_trading(self) -> None:
        status = self.session.status
        if status.killswitch_active:
            raise StatusChangeRejected("Killswitch active; live trading cannot be enabled")
        if not status.wallet_connected:
            raise StatusChangeRejected("Connect a wallet before enabling live trading")
        self._update_status(live_trading_enabled=True)
        await self.publish_snapshot()

    async def update_safety_score(self, score: float) -> None:
        score = max(0.0, min(100.0, float(score)))
        if self.session.status.killswitch_active:
            level = SecurityLevel.CRITICAL
        elif score >= 80:
            level = SecurityLevel.SECURE
        else:
            level = SecurityLevel.CALIBRATING
        self._update_status(safety_score=score, security_level=level)
        await self.publish_snapshot()

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def snapshot(self) -> AccountSnapshot:
        return self.session.snapshot(history_limit=SNAPSHOT_HISTORY_LIMIT)

    async def publish_snapshot(self) -> None:
        for alert in self.guardian.drain_alerts():
            await self._publish(
                "risk_alert",
                {
                    "message": alert.message,
                    "drawdown": alert.drawdown,
                    "balance": alert.balance,
                    "peak_balance": alert.peak_balance,
                    "kill_switch": True,
                },
            )
        await self._publish("account_update", self.snapshot().model_dump(mode="json"))

    async def _publish(self, event_type: str, data: Any) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(event_type, data)
