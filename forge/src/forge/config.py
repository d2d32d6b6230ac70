"""
Engine configuration.

All tunables are read from environment variables once, at start-up,
into an immutable :class:`EngineConfig`.  Services receive the config
object explicitly instead of reaching into ``os.environ`` themselves.

Recognised variables
--------------------

``INITIAL_BALANCE``
    Starting margin balance in account currency (default ``10000``).
``FEE_RATE``
    Taker fee charged on the notional of closing fills (default ``0.001``).
``MAINTENANCE_MARGIN_RATE``
    Maintenance buffer used for liquidation prices (default ``0.005``).
``MAX_DRAWDOWN``
    Fractional drawdown from peak above which the killswitch latches
    (default ``0.15``).
``QUOTE_RATE``
    Quote-currency units per account-currency unit.  ``1.0`` means the
    account is denominated in the quote currency; ``1.08`` models a EUR
    account trading USDT pairs.
``RECOMPUTE_LIQUIDATION_ON_AVERAGE``
    When true, adding to a position recomputes its liquidation price
    from the new average entry.  Off by default.
``MAX_LEVERAGE``
    Upper bound accepted by the order router (default ``125``).
``TRACKED_PAIRS``
    Comma separated symbols streamed by the price feed.
``FEED_WS_URL``
    Base URL of the combined ticker stream.
``PROMETHEUS_PORT`` / ``METRICS_ENABLE``
    Metrics endpoint settings.
``ALERT_ENABLE`` / ``SLACK_BOT_TOKEN`` / ``SLACK_CHANNEL_ID``
    Alert delivery settings.
``LOG_LEVEL``
    Root logging level (default ``INFO``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

from .errors import ConfigError

DEFAULT_TRACKED_PAIRS: Tuple[str, ...] = (
    "SOLUSDT",
    "TRXUSDT",
    "BTCUSDT",
    "ETHUSDT",
    "BONKUSDT",
    "WIFUSDT",
    "PEPEUSDT",
    "DOGEUSDT",
)

_TRUE = {"true", "1", "yes"}


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE


@dataclass(frozen=True)
class EngineConfig:
    initial_balance: float = 10000.0
    fee_rate: float = 0.001
    maintenance_margin_rate: float = 0.005
    max_drawdown: float = 0.15
    quote_rate: float = 1.0
    recompute_liquidation_on_average: bool = False
    max_leverage: int = 125
    tracked_pairs: Tuple[str, ...] = field(default=DEFAULT_TRACKED_PAIRS)
    feed_ws_url: str = "wss://stream.binance.com:9443/stream"
    prometheus_port: int = 9108
    metrics_enabled: bool = True
    alert_enabled: bool = False
    slack_bot_token: Optional[str] = None
    slack_channel_id: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.initial_balance <= 0:
            raise ConfigError("INITIAL_BALANCE must be positive")
        if not 0 <= self.fee_rate < 1:
            raise ConfigError("FEE_RATE must be in [0, 1)")
        if not 0 <= self.maintenance_margin_rate < 1:
            raise ConfigError("MAINTENANCE_MARGIN_RATE must be in [0, 1)")
        if not 0 < self.max_drawdown < 1:
            raise ConfigError("MAX_DRAWDOWN must be in (0, 1)")
        if self.quote_rate <= 0:
            raise ConfigError("QUOTE_RATE must be positive")
        if self.max_leverage < 1:
            raise ConfigError("MAX_LEVERAGE must be at least 1")
        if not self.tracked_pairs:
            raise ConfigError("TRACKED_PAIRS must name at least one symbol")

    def with_overrides(self, **changes) -> "EngineConfig":
        """Return a copy with selected fields replaced (re-validated)."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if env is None else env
        pairs_raw = env.get("TRACKED_PAIRS")
        if pairs_raw:
            pairs = tuple(p.strip().upper() for p in pairs_raw.split(",") if p.strip())
        else:
            pairs = DEFAULT_TRACKED_PAIRS
        return cls(
            initial_balance=_get_float(env, "INITIAL_BALANCE", 10000.0),
            fee_rate=_get_float(env, "FEE_RATE", 0.001),
            maintenance_margin_rate=_get_float(env, "MAINTENANCE_MARGIN_RATE", 0.005),
            max_drawdown=_get_float(env, "MAX_DRAWDOWN", 0.15),
            quote_rate=_get_float(env, "QUOTE_RATE", 1.0),
            recompute_liquidation_on_average=_get_bool(env, "RECOMPUTE_LIQUIDATION_ON_AVERAGE", False),
            max_leverage=_get_int(env, "MAX_LEVERAGE", 125),
            tracked_pairs=pairs,
            feed_ws_url=env.get("FEED_WS_URL") or "wss://stream.binance.com:9443/stream",
            prometheus_port=_get_int(env, "PROMETHEUS_PORT", 9108),
            metrics_enabled=_get_bool(env, "METRICS_ENABLE", True),
            alert_enabled=_get_bool(env, "ALERT_ENABLE", False),
            slack_bot_token=env.get("SLACK_BOT_TOKEN") or None,
            slack_channel_id=env.get("SLACK_ALERT_CHANNEL") or env.get("SLACK_CHANNEL_ID") or None,
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
