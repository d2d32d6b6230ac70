"""
Forge: a leveraged paper-trading engine.

The package simulates a margin account against live ticker prices.  The
trading core (ledger, position book, pending orders, matching engine,
order router and drawdown guardian) is synchronous and owned by a single
:class:`~forge.controller.TradingController`; the services under
:mod:`forge.services` stream prices in and push account snapshots,
alerts and metrics out.  ``worker_main`` runs everything together.
"""

from .config import EngineConfig  # noqa: F401
from .controller import TradingController  # noqa: F401
from .errors import OrderNotFound, OrderRejected, RejectReason  # noqa: F401
from .models import OrderSide, OrderStatus, OrderType, PriceTick, TradeOrder  # noqa: F401

__version__ = "0.1.0"
