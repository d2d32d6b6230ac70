"""
Price feed service.

Subscribes to the exchange's combined 24h ticker WebSocket stream for
the tracked pairs and hands every update, as a
:class:`~forge.models.PriceTick`, to the registered callbacks.  The
connection is re-established forever; failed connection attempts back
off exponentially with jitter, and the backoff starts over once a
connection has been established.  A disconnected feed simply stops
delivering ticks until it is back.  Malformed frames are logged and
skipped.

Consumers must tolerate late or duplicate ticks after a reconnect.

Usage:

    feed = PriceFeed(config.tracked_pairs, config.feed_ws_url)
    unsubscribe = feed.subscribe(controller.on_tick)
    asyncio.create_task(feed.run())
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Iterable, List, Optional, Union

import websockets
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_exponential,
    wait_random,
)

from ..models import PriceTick
from ..models_events import normalize_ticker_event

logger = logging.getLogger(__name__)

TickCallback = Callable[[PriceTick], None]


class PriceFeed:
    """Reconnecting ticker subscription delivering :class:`PriceTick` events."""

    def __init__(
        self,
        pairs: Iterable[str],
        ws_url: str = "wss://stream.binance.com:9443/stream",
        max_backoff: float = 60.0,
        min_backoff: float = 1.0,
        jitter: float = 1.0,
    ) -> None:
        self.pairs: List[str] = [p.strip().upper() for p in pairs if p.strip()]
        self.ws_url = ws_url
        self.max_backoff = max_backoff
        self.min_backoff = min_backoff
        self.jitter = jitter
        self.connected = False
        self.ticks_received = 0
        # Failed attempts in the current connect cycle; 0 once connected.
        self.failed_attempts = 0
        self._subscribers: List[TickCallback] = []
        self._running = False

    def stream_url(self) -> str:
        streams = "/".join(f"{pair.lower()}@ticker" for pair in self.pairs)
        return f"{self.ws_url}?streams={streams}"

    def subscribe(self, on_tick: TickCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(on_tick)

        def unsubscribe() -> None:
            if on_tick in self._subscribers:
                self._subscribers.remove(on_tick)

        return unsubscribe

    def _dispatch(self, tick: PriceTick) -> None:
        for callback in list(self._subscribers):
            try:
                callback(tick)
            except Exception:
                logger.exception("Tick subscriber failed for %s", tick.symbol)

    def handle_message(self, message: Union[str, bytes]) -> Optional[PriceTick]:
        """Parse one frame and dispatch it; returns the tick or None if skipped."""
        try:
            data = json.loads(message)
            tick = normalize_ticker_event(data)
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping unparseable feed message: %s", exc)
            return None
        self.ticks_received += 1
        self._dispatch(tick)
        return tick

    def _before_retry(self, retry_state: RetryCallState) -> None:
        self.failed_attempts = retry_state.attempt_number
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("Price feed connection attempt %d failed: %s", retry_state.attempt_number, exc)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            wait=wait_exponential(multiplier=self.min_backoff, min=self.min_backoff, max=self.max_backoff)
            + wait_random(0, self.jitter),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._before_retry,
            reraise=True,
        )

    async def _stream_once(self) -> None:
        """Connect and stream until the connection ends.

        Returns normally once a connection has been established and later
        closed; raises if the connection could not be opened.
        """
        url = self.stream_url()
        logger.info("Connecting price feed to %s", url)
        async with websockets.connect(url) as ws:
            self.connected = True
            self.failed_attempts = 0
            logger.info("Price feed connected (%d pairs)", len(self.pairs))
            try:
                async for message in ws:
                    if not self._running:
                        return
                    self.handle_message(message)
            except websockets.ConnectionClosed as exc:
                logger.warning("Price feed connection lost: %s", exc)
            finally:
                self.connected = False

    async def run(self) -> None:
        """Stream ticks until :meth:`stop` is called, reconnecting on failure."""
        self._running = True
        while self._running:
            # A fresh retry state per connect cycle restarts the backoff.
            async for attempt in self._retrying():
                with attempt:
                    await self._stream_once()
            if self._running:
                logger.warning("Price feed disconnected; reconnecting")
                await asyncio.sleep(self.min_backoff)
        logger.info("Price feed stopped")

    def stop(self) -> None:
        self._running = False
