"""
Alert Service
=============

This service subscribes to risk events on the internal event bus and
notifies operators via Slack when the drawdown kill switch is engaged
or a position is force‑closed by liquidation.

Configuration
-------------

The service reads its settings from :class:`~forge.config.EngineConfig`,
which in turn is populated from the environment:

``ALERT_ENABLE``
    Set to ``true``/``1``/``yes`` to enable alerting.  If not set,
    the service will consume events and only log them.

``SLACK_BOT_TOKEN`` / ``SLACK_CHANNEL_ID``
    Credentials for Slack notifications.  ``SLACK_ALERT_CHANNEL``
    overrides the channel if set.  Without both values alerts are
    written to the log instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from slack_sdk import WebClient

from ..config import EngineConfig

logger = logging.getLogger(__name__)


def format_risk_alert(message: Dict[str, Any]) -> str:
    drawdown = float(message.get("drawdown") or 0.0)
    balance = float(message.get("balance") or 0.0)
    peak = float(message.get("peak_balance") or 0.0)
    return (
        f"⚠️ Kill switch engaged! Drawdown {drawdown * 100:.2f}% "
        f"(balance {balance:.2f}, peak {peak:.2f})"
    )


def format_liquidation(message: Dict[str, Any]) -> str:
    symbol = message.get("symbol", "?")
    amount = float(message.get("amount") or 0.0)
    price = float(message.get("price") or 0.0)
    margin_lost = float(message.get("reserved_value") or 0.0)
    return f"🔻 Liquidated {amount:.6f} {symbol} at {price:.4f}; margin lost {margin_lost:.2f}"


class AlertService:
    """Subscribe to risk events and send Slack alerts."""

    def __init__(self, event_bus: Any, config: Optional[EngineConfig] = None) -> None:
        self.event_bus = event_bus
        config = config or EngineConfig.from_env()
        self.enabled = config.alert_enabled
        self.slack_token = config.slack_bot_token
        self.slack_channel = config.slack_channel_id
        self.client: Optional[WebClient] = None
        if self.enabled and self.slack_token:
            self.client = WebClient(token=self.slack_token)
        if self.enabled and not (self.slack_token and self.slack_channel):
            logger.warning("Alerts enabled but no Slack credentials provided; falling back to console logging")

    async def _send_slack_message(self, text: str) -> None:
        """Send a message to Slack if configured; otherwise log."""
        if self.client is None or not self.slack_channel:
            logger.warning("ALERT: %s", text)
            return
        try:
            await asyncio.to_thread(self.client.chat_postMessage, channel=self.slack_channel, text=text)
            logger.info("Sent Slack alert: %s", text)
        except Exception as exc:
            logger.error("Failed to send Slack alert: %s", exc)
            logger.warning("ALERT: %s", text)

    async def notify(self, text: str) -> None:
        if not self.enabled:
            logger.info("Alert (disabled): %s", text)
            return
        await self._send_slack_message(text)

    async def _handle_risk_alerts(self) -> None:
        async for message in self.event_bus.subscribe("risk_alert"):
            if not isinstance(message, dict):
                continue
            await self.notify(format_risk_alert(message))

    async def _handle_liquidations(self) -> None:
        async for message in self.event_bus.subscribe("liquidation"):
            if not isinstance(message, dict):
                continue
            await self.notify(format_liquidation(message))

    async def run(self) -> None:
        """Listen for kill switch and liquidation events forever."""
        if self.event_bus is None:
            logger.error("AlertService requires an event bus")
            return
        logger.info("AlertService started; enabled=%s, slack_channel=%s", self.enabled, self.slack_channel)
        await asyncio.gather(self._handle_risk_alerts(), self._handle_liquidations())
