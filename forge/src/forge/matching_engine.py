"""
Matching engine.

The engine owns two operations on the trading session:

* :meth:`MatchingEngine.fill` executes one order at a given price,
  opening, averaging into or reducing a long position and booking the
  result in the ledger.
* :meth:`MatchingEngine.process_tick` reacts to one price tick.  It
  first re-marks the position for the tick's symbol (liquidating it if
  the price crossed its liquidation price) and then scans the pending
  order set for triggered LIMIT and STOP_MARKET orders.

Each call runs to completion without yielding, so from the point of
view of any other event a tick is applied atomically.  The result of a
tick is returned as a :class:`~forge.models.TickDiff` instead of being
pushed through callbacks; the controller publishes it afterwards.

Known limitation: averaging into a position does not move its
liquidation price unless ``recompute_liquidation_on_average`` is set.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import margin
from .models import (
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
    PriceTick,
    TickDiff,
    TradeOrder,
    generate_order_id,
    now_ms,
)
from .risk_guardian import RiskGuardian
from .session import TradingSession

logger = logging.getLogger(__name__)


def is_triggered(order: TradeOrder, price: float) -> bool:
    """Return True if a resting order should execute at ``price``."""
    if order.type is OrderType.LIMIT and order.limit_price:
        if order.side is OrderSide.BUY:
            return price <= order.limit_price
        return price >= order.limit_price
    if order.type is OrderType.STOP_MARKET and order.stop_price:
        # SELL stop protects a long, BUY stop protects a short.
        if order.side is OrderSide.SELL:
            return price <= order.stop_price
        return price >= order.stop_price
    return False


class MatchingEngine:
    def __init__(self, session: TradingSession, guardian: Optional[RiskGuardian] = None) -> None:
        self.session = session
        self.guardian = guardian
        cfg = session.config
        self.fee_rate = cfg.fee_rate
        self.maintenance_margin_rate = cfg.maintenance_margin_rate
        self.quote_rate = cfg.quote_rate
        self.recompute_liquidation_on_average = cfg.recompute_liquidation_on_average

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------
    def fill(self, order: TradeOrder, fill_price: float) -> TradeOrder:
        """Execute ``order`` at ``fill_price`` and return the history record.

        The returned record has status FILLED, or CANCELLED when a SELL
        finds no position left to close.
        """
        if order.side is OrderSide.BUY:
            self._fill_buy(order, fill_price)
            record = order.model_copy(
                update={"status": OrderStatus.FILLED, "price": fill_price, "timestamp": now_ms(), "fee": 0.0}
            )
        else:
            record = self._fill_sell(order, fill_price)
        self.session.ledger.record(record)
        return record

    def _fill_buy(self, order: TradeOrder, fill_price: float) -> None:
        book = self.session.positions
        # Book exactly what was debited at admission; a stop filled past its
        # trigger must not create or lose margin.
        required = order.reserved_value or margin.margin_required(
            order.amount, fill_price, order.leverage, self.quote_rate
        )
        existing = book.get(order.symbol)
        if existing is None:
            liq = margin.liquidation_price(fill_price, order.leverage, self.maintenance_margin_rate)
            book.put(
                Position(
                    symbol=order.symbol,
                    amount=order.amount,
                    avg_entry_price=fill_price,
                    current_price=fill_price,
                    liquidation_price=liq,
                    notional_value=margin.notional_value(fill_price, order.amount, self.quote_rate),
                    margin_used=required,
                    leverage=order.leverage,
                    is_long=True,
                )
            )
            logger.info(
                "Opened long %s amount=%.6f @ %.6f lev=%d margin=%.2f liq=%.6f",
                order.symbol,
                order.amount,
                fill_price,
                order.leverage,
                required,
                liq,
            )
            return

        total = existing.amount + order.amount
        avg = margin.weighted_average_price(existing.amount, existing.avg_entry_price, order.amount, fill_price)
        update = {
            "amount": total,
            "avg_entry_price": avg,
            "margin_used": existing.margin_used + required,
        }
        if self.recompute_liquidation_on_average:
            update["liquidation_price"] = margin.liquidation_price(
                avg, existing.leverage, self.maintenance_margin_rate, existing.is_long
            )
        pnl, pnl_pct = margin.unrealized_pnl(
            existing.current_price, avg, total, existing.leverage, existing.is_long, self.quote_rate
        )
        update["unrealized_pnl"] = pnl
        update["unrealized_pnl_percent"] = pnl_pct
        update["notional_value"] = margin.notional_value(existing.current_price, total, self.quote_rate)
        book.put(existing.model_copy(update=update))
        logger.info(
            "Increased long %s by %.6f @ %.6f, amount=%.6f avg=%.6f",
            order.symbol,
            order.amount,
            fill_price,
            total,
            avg,
        )

    def _fill_sell(self, order: TradeOrder, fill_price: float) -> TradeOrder:
        book = self.session.positions
        pos = book.get(order.symbol)
        if pos is None:
            logger.warning("SELL %s for %s found no open position; cancelling", order.id, order.symbol)
            return order.model_copy(update={"status": OrderStatus.CANCELLED, "timestamp": now_ms()})

        ratio = margin.close_ratio(order.amount, pos.amount)
        closed_amount = pos.amount * ratio if ratio == 1.0 else order.amount
        pnl_realized = pos.unrealized_pnl * ratio
        margin_released = pos.margin_used * ratio
        fee = margin.trading_fee(closed_amount, fill_price, self.fee_rate, self.quote_rate)
        self.session.ledger.settle_close(margin_released, pnl_realized, fee)

        if ratio == 1.0:
            book.remove(order.symbol)
            logger.info(
                "Closed %s amount=%.6f @ %.6f pnl=%.2f fee=%.4f",
                order.symbol,
                closed_amount,
                fill_price,
                pnl_realized,
                fee,
            )
        else:
            keep = 1 - ratio
            book.put(
                pos.model_copy(
                    update={
                        "amount": pos.amount - closed_amount,
                        "margin_used": pos.margin_used - margin_released,
                        "unrealized_pnl": pos.unrealized_pnl * keep,
                        "notional_value": pos.notional_value * keep,
                    }
                )
            )
            logger.info(
                "Reduced %s by %.6f @ %.6f pnl=%.2f fee=%.4f",
                order.symbol,
                closed_amount,
                fill_price,
                pnl_realized,
                fee,
            )
        if self.guardian is not None:
            self.guardian.evaluate()
        return order.model_copy(
            update={
                "status": OrderStatus.FILLED,
                "price": fill_price,
                "amount": closed_amount,
                "timestamp": now_ms(),
                "fee": fee,
            }
        )

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def process_tick(self, tick: PriceTick) -> TickDiff:
        """Apply one tick: liquidation and PnL pass, then trigger pass."""
        self.session.market[tick.symbol] = tick
        diff = TickDiff(symbol=tick.symbol, price=tick.price)

        pos = self.session.positions.get(tick.symbol)
        if pos is not None:
            if margin.is_liquidated(tick.price, pos.liquidation_price, pos.is_long):
                diff.liquidations.append(self._liquidate(pos, tick.price))
            else:
                diff.updated_positions.append(self._mark(pos, tick.price))

        for order in self.session.pending:
            mark = self.session.mark_price(order.symbol)
            if mark is None or not is_triggered(order, mark):
                continue
            self.session.pending.remove(order.id)
            fill_price = order.limit_price or mark
            logger.info("Pending %s %s %s triggered at %.6f", order.type.value, order.side.value, order.id, mark)
            record = self.fill(order, fill_price)
            if record.status is OrderStatus.FILLED:
                diff.fills.append(record)
            else:
                diff.cancellations.append(record)
        return diff

    def _mark(self, pos: Position, price: float) -> Position:
        pnl, pnl_pct = margin.unrealized_pnl(
            price, pos.avg_entry_price, pos.amount, pos.leverage, pos.is_long, self.quote_rate
        )
        updated = pos.model_copy(
            update={
                "current_price": price,
                "unrealized_pnl": pnl,
                "unrealized_pnl_percent": pnl_pct,
                "notional_value": margin.notional_value(price, pos.amount, self.quote_rate),
            }
        )
        self.session.positions.put(updated)
        return updated

    def _liquidate(self, pos: Position, price: float) -> TradeOrder:
        self.session.positions.remove(pos.symbol)
        record = TradeOrder(
            id=generate_order_id("LIQ"),
            symbol=pos.symbol,
            side=(OrderSide.BUY if pos.is_long else OrderSide.SELL).opposite,
            type=OrderType.MARKET,
            amount=pos.amount,
            price=price,
            leverage=pos.leverage,
            reserved_value=pos.margin_used,
            fee=0.0,
            status=OrderStatus.LIQUIDATED,
        )
        self.session.ledger.record(record)
        logger.warning(
            "LIQUIDATED %s amount=%.6f @ %.6f (liq=%.6f), margin forfeited=%.2f",
            pos.symbol,
            pos.amount,
            price,
            pos.liquidation_price,
            pos.margin_used,
        )
        return record
