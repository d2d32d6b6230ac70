"""
Exception types raised by the trading core.

Order admission failures are reported synchronously by raising
:class:`OrderRejected`.  A rejection never mutates session state, so
callers may simply catch it and surface ``reason`` to the user.
"""

from __future__ import annotations

from enum import Enum


class RejectReason(str, Enum):
    KILLSWITCH_ACTIVE = "KILLSWITCH_ACTIVE"
    NO_PRICE = "NO_PRICE"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    NO_POSITION = "NO_POSITION"
    INVALID_ORDER = "INVALID_ORDER"


class ForgeError(Exception):
    """Base class for all engine errors."""


class ConfigError(ForgeError):
    """Raised when an environment value cannot be parsed or is out of range."""


class OrderRejected(ForgeError):
    """An order intent failed admission.  Nothing was created or debited."""

    def __init__(self, reason: RejectReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}"


class StatusChangeRejected(ForgeError):
    """A system status transition is not allowed in the current state."""


class OrderNotFound(ForgeError):
    """Raised when cancelling an order id that is not resting."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"No pending order with id {order_id}")
        self.order_id = order_id
