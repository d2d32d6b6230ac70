"""
Order router.

Admits new order intents into the session.  Every intent passes
through :meth:`OrderRouter.pre_trade_check` first; a failing check
raises :class:`~forge.errors.OrderRejected` before anything is created
or debited.

Key behaviour:

* Position size is ``margin * leverage`` converted into tokens at the
  reference price: the limit price for LIMIT orders, the stop price for
  STOP_MARKET orders and the current mark price for MARKET orders.
* BUY orders reserve their margin immediately, whether they fill now or
  rest in the pending set.  SELL orders reserve nothing; closing
  releases margin when the fill happens.
* MARKET orders fill synchronously at the mark price.  LIMIT and
  STOP_MARKET orders are appended to the pending set with status OPEN.
* Cancelling a resting BUY returns its reserved margin.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import margin
from .errors import OrderNotFound, OrderRejected, RejectReason
from .matching_engine import MatchingEngine
from .models import OrderSide, OrderStatus, OrderType, TradeOrder, now_ms
from .risk_guardian import RiskGuardian
from .session import TradingSession

logger = logging.getLogger(__name__)


def _parse(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise OrderRejected(RejectReason.INVALID_ORDER, f"Unknown {enum_cls.__name__}: {value!r}") from exc


class OrderRouter:
    """Validates, admits and cancels user orders."""

    def __init__(self, session: TradingSession, engine: MatchingEngine, guardian: RiskGuardian) -> None:
        self.session = session
        self.engine = engine
        self.guardian = guardian
        self.fee_rate = session.config.fee_rate
        self.quote_rate = session.config.quote_rate
        self.max_leverage = session.config.max_leverage

    def pre_trade_check(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        margin_amount: float,
        leverage: int,
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> float:
        """Validate an intent and return its reference price.

        :raises OrderRejected: if the intent may not be admitted.
        """
        if self.guardian.killswitch_active:
            raise OrderRejected(RejectReason.KILLSWITCH_ACTIVE, "Killswitch active. Trading disabled.")
        if not isinstance(leverage, int) or leverage < 1 or leverage > self.max_leverage:
            raise OrderRejected(
                RejectReason.INVALID_ORDER, f"Leverage must be an integer in [1, {self.max_leverage}]"
            )
        mark = self.session.mark_price(symbol)
        if mark is None:
            raise OrderRejected(RejectReason.NO_PRICE, f"No price available for {symbol}")

        if order_type is OrderType.LIMIT:
            if not limit_price or limit_price <= 0:
                raise OrderRejected(RejectReason.INVALID_ORDER, "LIMIT orders need a positive limit price")
            reference = limit_price
        elif order_type is OrderType.STOP_MARKET:
            if not stop_price or stop_price <= 0:
                raise OrderRejected(RejectReason.INVALID_ORDER, "STOP_MARKET orders need a positive stop price")
            reference = stop_price
        else:
            reference = mark

        if side is OrderSide.BUY:
            if margin_amount <= 0:
                raise OrderRejected(RejectReason.INVALID_ORDER, "Margin amount must be positive")
            if self.session.ledger.balance < margin_amount:
                raise OrderRejected(
                    RejectReason.INSUFFICIENT_MARGIN,
                    f"Insufficient margin balance: {self.session.ledger.balance:.2f} < {margin_amount:.2f}",
                )
        else:
            if symbol not in self.session.positions:
                raise OrderRejected(RejectReason.NO_POSITION, f"No position to sell for {symbol}")
            if margin_amount <= 0:
                raise OrderRejected(RejectReason.INVALID_ORDER, "Margin amount must be positive")
        return reference

    def submit(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        margin_amount: float,
        leverage: int,
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> TradeOrder:
        """Admit an order intent.

        Returns the FILLED history record for MARKET orders and the OPEN
        resting order for LIMIT/STOP_MARKET orders.
        """
        symbol = symbol.upper()
        try:
            side = _parse(OrderSide, side)
            order_type = _parse(OrderType, order_type)
            reference = self.pre_trade_check(
                symbol, side, order_type, margin_amount, leverage, limit_price, stop_price
            )
        except OrderRejected as exc:
            logger.warning("Order rejected %s: %s", symbol, exc)
            raise
        amount = margin.token_quantity(margin_amount, leverage, reference, self.quote_rate)
        return self._admit(symbol, side, order_type, amount, reference, margin_amount, leverage, limit_price, stop_price)

    def close_position(
        self,
        symbol: str,
        order_type: OrderType = OrderType.MARKET,
        limit_price: Optional[float] = None,
        stop_price: Optional[float] = None,
    ) -> TradeOrder:
        """Submit a SELL for exactly the open position's amount."""
        symbol = symbol.upper()
        pos = self.session.positions.get(symbol)
        margin_hint = pos.margin_used if pos is not None else 0.0
        leverage = pos.leverage if pos is not None else 1
        try:
            order_type = _parse(OrderType, order_type)
            reference = self.pre_trade_check(
                symbol, OrderSide.SELL, order_type, margin_hint, leverage, limit_price, stop_price
            )
        except OrderRejected as exc:
            logger.warning("Close rejected %s: %s", symbol, exc)
            raise
        assert pos is not None
        return self._admit(
            symbol, OrderSide.SELL, order_type, pos.amount, reference, pos.margin_used, leverage, limit_price, stop_price
        )

    def _admit(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        amount: float,
        reference: float,
        margin_amount: float,
        leverage: int,
        limit_price: Optional[float],
        stop_price: Optional[float],
    ) -> TradeOrder:
        order = TradeOrder(
            symbol=symbol,
            side=side,
            type=order_type,
            amount=amount,
            price=reference,
            limit_price=limit_price if order_type is OrderType.LIMIT else None,
            stop_price=stop_price if order_type is OrderType.STOP_MARKET else None,
            leverage=leverage,
            reserved_value=margin_amount if side is OrderSide.BUY else 0.0,
            fee=margin_amount * self.fee_rate,
            status=OrderStatus.OPEN,
        )
        if side is OrderSide.BUY:
            self.session.ledger.reserve(margin_amount)
            self.guardian.evaluate()
        logger.info(
            "Admitted %s %s %s amount=%.6f ref=%.6f margin=%.2f lev=%d",
            order.id,
            side.value,
            symbol,
            amount,
            reference,
            margin_amount,
            leverage,
        )
        if order_type is OrderType.MARKET:
            return self.engine.fill(order, reference)
        self.session.pending.add(order)
        return order

    def cancel(self, order_id: str) -> TradeOrder:
        """Remove a resting order; BUY orders get their margin back."""
        order = self.session.pending.remove(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.reserves_margin:
            self.session.ledger.release(order.reserved_value)
            self.guardian.evaluate()
        record = order.model_copy(update={"status": OrderStatus.CANCELLED, "timestamp": now_ms()})
        self.session.ledger.record(record)
        logger.info("Cancelled %s (%s %s)", order_id, order.side.value, order.symbol)
        return record
