"""
Entry point for the paper-trading engine.

Builds the event bus, trading controller and services from the
environment and runs them concurrently.  If any task exits with an
exception the others are cancelled and the process terminates.
"""

import asyncio
import logging

from .config import EngineConfig
from .controller import TradingController
from .services import AlertService, EventBus, MetricsService, PriceFeed


async def main() -> None:
    """Run all engine tasks concurrently and wait for them to finish."""
    config = EngineConfig.from_env()
    logging.basicConfig(level=config.log_level)
    logger = logging.getLogger(__name__)

    bus = EventBus()
    controller = TradingController(config, event_bus=bus)
    feed = PriceFeed(config.tracked_pairs, config.feed_ws_url)
    unsubscribe = feed.subscribe(controller.on_tick)

    tasks = [
        asyncio.create_task(controller.run()),
        asyncio.create_task(feed.run()),
        asyncio.create_task(AlertService(bus, config).run()),
    ]
    if config.metrics_enabled:
        tasks.append(asyncio.create_task(MetricsService(bus, port=config.prometheus_port).run()))
    await controller.publish_snapshot()
    logger.info(
        "Engine started: balance=%.2f pairs=%s", config.initial_balance, ",".join(config.tracked_pairs)
    )
    # Wait for any task to finish; if one exits, cancel the others
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    unsubscribe()
    feed.stop()
    for task in pending:
        task.cancel()
    for task in done:
        exc = task.exception()
        if exc:
            logger.error("Engine task raised an exception", exc_info=exc)
    logger.info("Engine exiting")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
