"""
Metrics Service
===============

Subscribes to ``account_update`` snapshots on the internal event bus and
publishes the account state as Prometheus metrics.

Configuration
-------------

* ``PROMETHEUS_PORT``: port on which to expose the metrics HTTP endpoint.
* ``METRICS_ENABLE``: set to ``false`` to skip starting the HTTP server.

Metrics
-------

* ``forge_balance``: spendable account balance.
* ``forge_peak_balance``: highest balance seen since the last reset.
* ``forge_drawdown``: current drawdown from peak as a fraction.
* ``forge_killswitch``: 1 if the kill switch is engaged, 0 otherwise.
* ``forge_open_positions``: number of open positions.
* ``forge_pending_orders``: number of resting LIMIT/STOP orders.
* ``forge_unrealized_pnl{symbol=...}``: unrealized PnL per open position.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Set

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

logger = logging.getLogger(__name__)


class MetricsService:
    """Expose account snapshots for Prometheus."""

    def __init__(
        self,
        event_bus: Any,
        port: int = 9108,
        serve_http: bool = True,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.event_bus = event_bus
        self.port = port
        self.serve_http = serve_http
        self.registry = registry or REGISTRY
        self.balance_gauge = Gauge("forge_balance", "Spendable account balance", registry=self.registry)
        self.peak_gauge = Gauge("forge_peak_balance", "Peak account balance", registry=self.registry)
        self.drawdown_gauge = Gauge("forge_drawdown", "Drawdown from peak (fraction)", registry=self.registry)
        self.killswitch_gauge = Gauge("forge_killswitch", "Kill switch status (1=on,0=off)", registry=self.registry)
        self.positions_gauge = Gauge("forge_open_positions", "Number of open positions", registry=self.registry)
        self.pending_gauge = Gauge("forge_pending_orders", "Number of resting orders", registry=self.registry)
        self.upnl_gauge = Gauge(
            "forge_unrealized_pnl",
            "Unrealized PnL per position",
            labelnames=["symbol"],
            registry=self.registry,
        )
        self._labelled: Set[str] = set()

    def update(self, snapshot: Dict[str, Any]) -> None:
        """Set every gauge from one serialised account snapshot."""
        self.balance_gauge.set(float(snapshot.get("balance", 0.0)))
        self.peak_gauge.set(float(snapshot.get("peak_balance", 0.0)))
        risk = snapshot.get("risk") or {}
        self.drawdown_gauge.set(float(risk.get("drawdown", 0.0)))
        status = snapshot.get("status") or {}
        self.killswitch_gauge.set(1 if status.get("killswitch_active") else 0)
        positions = snapshot.get("positions") or []
        self.positions_gauge.set(len(positions))
        self.pending_gauge.set(len(snapshot.get("pending_orders") or []))

        seen: Set[str] = set()
        for pos in positions:
            symbol = pos.get("symbol")
            if not symbol:
                continue
            seen.add(symbol)
            self.upnl_gauge.labels(symbol=symbol).set(float(pos.get("unrealized_pnl", 0.0)))
        # Closed positions drop their series.
        for symbol in self._labelled - seen:
            self.upnl_gauge.remove(symbol)
        self._labelled = seen

    async def run(self) -> None:
        """Serve metrics and follow account updates forever."""
        if self.event_bus is None:
            logger.error("MetricsService requires an event bus")
            return
        if self.serve_http:
            try:
                start_http_server(self.port, registry=self.registry)
                logger.info("Prometheus metrics served on port %d", self.port)
            except OSError as exc:
                logger.warning("Could not start Prometheus server on port %d: %s", self.port, exc)
        async for message in self.event_bus.subscribe("account_update"):
            if not isinstance(message, dict):
                continue
            self.update(message)
