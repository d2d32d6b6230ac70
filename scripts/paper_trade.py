#!/usr/bin/env python
"""
Offline paper trading replay.

Feeds a CSV file of ticks (columns ``symbol,price``) through a trading
controller in file order.  An opening order may be placed as soon as
the first price for its symbol has been seen.  The final account
snapshot is written as JSON.

Example:

    python scripts/paper_trade.py --ticks ticks.csv --out run.json \
        --symbol BTCUSDT --margin 1000 --leverage 10
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import os
import sys
from typing import Iterator, Optional

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "forge", "src")))

from forge.config import EngineConfig  # noqa: E402
from forge.controller import TradingController  # noqa: E402
from forge.errors import OrderRejected  # noqa: E402
from forge.models import OrderSide, OrderType, PriceTick  # noqa: E402

logger = logging.getLogger("paper_trade")


def read_ticks(path: str) -> Iterator[PriceTick]:
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            try:
                yield PriceTick(symbol=row["symbol"], price=float(row["price"]))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping bad row %s: %s", row, exc)


async def replay(
    ticks_path: str,
    config: EngineConfig,
    symbol: Optional[str] = None,
    margin_amount: float = 0.0,
    leverage: int = 1,
    order_type: OrderType = OrderType.MARKET,
    limit_price: Optional[float] = None,
) -> dict:
    controller = TradingController(config)
    symbol = symbol.upper() if symbol else None
    placed = symbol is None
    for tick in read_ticks(ticks_path):
        await controller.handle_tick(tick)
        if not placed and tick.symbol == symbol:
            placed = True
            try:
                order = await controller.place_order(
                    symbol, OrderSide.BUY, order_type, margin_amount, leverage, limit_price=limit_price
                )
                logger.info("Opening order %s %s", order.id, order.status.value)
            except OrderRejected as exc:
                logger.error("Opening order rejected: %s", exc)
    return controller.snapshot().model_dump(mode="json")


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a CSV tick file through the paper trading engine.")
    parser.add_argument("--ticks", required=True, help="CSV file with symbol,price columns.")
    parser.add_argument("--out", required=True, help="Path of the JSON snapshot to write.")
    parser.add_argument("--symbol", help="Symbol of the opening BUY order, if any.")
    parser.add_argument("--margin", type=float, default=100.0, help="Margin for the opening order.")
    parser.add_argument("--leverage", type=int, default=1, help="Leverage for the opening order.")
    parser.add_argument("--limit-price", type=float, help="Rest the opening order as a LIMIT at this price.")
    parser.add_argument("--balance", type=float, help="Override INITIAL_BALANCE.")
    args = parser.parse_args()

    config = EngineConfig.from_env()
    logging.basicConfig(level=config.log_level)
    if args.balance is not None:
        config = config.with_overrides(initial_balance=args.balance)
    order_type = OrderType.LIMIT if args.limit_price else OrderType.MARKET
    snapshot = asyncio.run(
        replay(args.ticks, config, args.symbol, args.margin, args.leverage, order_type, args.limit_price)
    )
    out_dir = os.path.dirname(os.path.abspath(args.out))
    os.makedirs(out_dir, exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(snapshot, f, indent=2)
    print(f"Replay complete: balance={snapshot['balance']:.2f}. Snapshot written to {args.out}")


if __name__ == "__main__":
    main()
