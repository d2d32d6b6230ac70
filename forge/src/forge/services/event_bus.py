"""
Simple in‑memory event bus for decoupling the trading core from its
observers (metrics, alerts, a UI bridge).

Every subscriber gets its own asyncio queue, so each subscriber sees
every event published after it subscribed.  Events published on a topic
nobody listens to yet are held in a bounded backlog and handed to the
first subscriber, so a service started slightly after the controller
does not miss the opening snapshot.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Any, AsyncIterator, Deque, Dict, List


class EventBus:
    def __init__(self, backlog: int = 1000) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._backlog: Dict[str, Deque[Any]] = defaultdict(lambda: deque(maxlen=backlog))

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, ()))

    async def publish(self, event_type: str, data: Any) -> None:
        """Deliver an event to all current subscribers of ``event_type``."""
        queues = self._subscribers.get(event_type)
        if not queues:
            self._backlog[event_type].append(data)
            return
        for queue in queues:
            queue.put_nowait(data)

    async def subscribe(self, event_type: str) -> AsyncIterator[Any]:
        """Yield events of a given type as they arrive."""
        queue: asyncio.Queue = asyncio.Queue()
        for item in self._backlog.pop(event_type, ()):
            queue.put_nowait(item)
        self._subscribers[event_type].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[event_type].remove(queue)
