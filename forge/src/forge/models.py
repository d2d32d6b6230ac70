"""
Domain models for the paper-trading engine using Pydantic.

These models provide validation and serialization for price ticks,
orders, positions and the process-wide system status.  Orders and
positions are treated as values: the engine replaces them with
updated copies (``model_copy(update=...)``) rather than mutating them
in place, so a snapshot handed to an observer never changes under it.
"""

from __future__ import annotations

import itertools
import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_MARKET = "STOP_MARKET"


class OrderStatus(str, Enum):
    OPEN = "OPEN"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    LIQUIDATED = "LIQUIDATED"


class TradingMode(str, Enum):
    PAPER = "PAPER"
    TESTNET = "TESTNET"
    LIVE = "LIVE"


class SecurityLevel(str, Enum):
    CRITICAL = "CRITICAL"
    CALIBRATING = "CALIBRATING"
    SECURE = "SECURE"


def now_ms() -> int:
    return int(time.time() * 1000)


_order_seq = itertools.count(1)


def generate_order_id(prefix: str = "ORD") -> str:
    """Return a session-unique order id, e.g. ``ORD-1718000000000-7``."""
    return f"{prefix}-{now_ms()}-{next(_order_seq)}"


class PriceTick(BaseModel):
    """A single ticker update for one symbol."""

    symbol: str = Field(..., min_length=1, description="Exchange symbol, e.g. SOLUSDT")
    price: float = Field(..., gt=0, description="Last traded (mark) price")
    bid: float = 0.0
    ask: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    volume: float = 0.0
    quote_volume: float = 0.0
    price_change_percent: float = 0.0

    @field_validator("symbol")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class TradeOrder(BaseModel):
    """A resting order or a historical order record."""

    id: str = Field(default_factory=generate_order_id)
    symbol: str
    side: OrderSide
    type: OrderType
    amount: float = Field(..., gt=0, description="Quantity in base tokens")
    price: float = Field(..., gt=0, description="Reference price at entry, fill price once filled")
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    leverage: int = Field(1, ge=1)
    reserved_value: float = Field(0.0, ge=0, description="Margin reserved, account currency")
    timestamp: int = Field(default_factory=now_ms)
    fee: float = 0.0
    status: OrderStatus = OrderStatus.OPEN

    @property
    def reserves_margin(self) -> bool:
        return self.side is OrderSide.BUY


class Position(BaseModel):
    """An open leveraged position; at most one per symbol."""

    symbol: str
    amount: float = Field(..., gt=0)
    avg_entry_price: float = Field(..., gt=0)
    current_price: float
    liquidation_price: float
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0
    notional_value: float
    margin_used: float
    leverage: int = Field(..., ge=1)
    is_long: bool = True


class SystemStatus(BaseModel):
    safety_score: float = Field(34.5, ge=0, le=100)
    wallet_connected: bool = False
    live_trading_enabled: bool = False
    trading_mode: TradingMode = TradingMode.PAPER
    security_level: SecurityLevel = SecurityLevel.CRITICAL
    killswitch_active: bool = False


class TickDiff(BaseModel):
    """Everything a single tick changed, in the order it happened."""

    symbol: str
    price: float
    updated_positions: List[Position] = Field(default_factory=list)
    liquidations: List[TradeOrder] = Field(default_factory=list)
    fills: List[TradeOrder] = Field(default_factory=list)
    cancellations: List[TradeOrder] = Field(default_factory=list)


class RiskMetrics(BaseModel):
    total_exposure: float = 0.0
    total_portfolio_value: float = 0.0
    exposure_ratio_pct: float = 0.0
    var_24h: float = 0.0
    open_drawdown: float = 0.0
    drawdown: float = 0.0
    peak_balance: float = 0.0


class AccountSnapshot(BaseModel):
    """Read-only view of the session pushed to observers after every mutation."""

    balance: float
    peak_balance: float
    positions: List[Position]
    pending_orders: List[TradeOrder]
    history: List[TradeOrder]
    status: SystemStatus
    risk: RiskMetrics
    timestamp: int = Field(default_factory=now_ms)
