"""Service layer for the engine.

This package exposes the long-running services wired around the trading
controller: the event bus, the price feed, alerting and metrics.
"""

from .alert_service import AlertService  # noqa: F401
from .data_feed import PriceFeed  # noqa: F401
from .event_bus import EventBus  # noqa: F401
from .metrics_service import MetricsService  # noqa: F401
