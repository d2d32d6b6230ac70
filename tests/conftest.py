"""Pytest configuration for path setup.

The test suite imports the ``forge`` package from ``forge/src`` and the
helpers under ``tests/helpers``.  When pytest is executed as an installed
script, neither directory is automatically on ``sys.path``.  This file
makes both available for imports during test collection.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

for path in (ROOT, ROOT / "forge" / "src"):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from forge.config import EngineConfig  # noqa: E402
from forge.controller import TradingController  # noqa: E402
from forge.matching_engine import MatchingEngine  # noqa: E402
from forge.models import OrderSide, OrderType, PriceTick, TickDiff, TradeOrder  # noqa: E402
from forge.order_router import OrderRouter  # noqa: E402
from forge.risk_guardian import RiskGuardian  # noqa: E402
from forge.session import TradingSession  # noqa: E402


class Engine:
    """The synchronous core wired together around one session."""

    def __init__(self, config: EngineConfig) -> None:
        self.session = TradingSession(config)
        self.guardian = RiskGuardian(self.session)
        self.matching = MatchingEngine(self.session, self.guardian)
        self.router = OrderRouter(self.session, self.matching, self.guardian)

    @property
    def ledger(self):
        return self.session.ledger

    def tick(self, symbol: str, price: float) -> TickDiff:
        """Apply a tick the way the controller does: match, then re-evaluate risk."""
        diff = self.matching.process_tick(PriceTick(symbol=symbol, price=price))
        self.guardian.evaluate()
        return diff

    def buy(self, symbol: str, margin_amount: float, leverage: int, **kwargs) -> TradeOrder:
        order_type = kwargs.pop("order_type", OrderType.MARKET)
        return self.router.submit(symbol, OrderSide.BUY, order_type, margin_amount, leverage, **kwargs)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(initial_balance=10_000.0)


@pytest.fixture
def engine(config: EngineConfig) -> Engine:
    return Engine(config)


@pytest.fixture
def controller(config: EngineConfig) -> TradingController:
    return TradingController(config)


@pytest.fixture
def make_engine():
    """Build an engine for a config other than the default fixture's."""
    return Engine
