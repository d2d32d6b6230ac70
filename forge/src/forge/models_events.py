"""Ticker payload schema and normalisation helpers.

The exchange pushes 24h rolling ticker statistics over a combined
stream.  Each frame wraps the payload as ``{"stream": ..., "data":
{...}}`` and the payload uses single-letter keys with numbers encoded
as strings.  :func:`normalize_ticker_event` turns either the wrapped
frame or the bare payload into a validated :class:`PriceTick`.

The raw payload is described with :class:`typing.TypedDict` so that
fake streams in tests and the live feed share one contract.
"""

from __future__ import annotations

from typing import Any, Dict, TypedDict

from .models import PriceTick


class TickerPayload(TypedDict, total=False):
    """Schema for a raw 24h ticker payload.

    Required keys:

    * ``s`` (str): Symbol, e.g. ``"SOLUSDT"``.
    * ``c`` (str): Last price.

    Optional keys (all numeric strings):

    * ``P``: 24h price change percent.
    * ``h`` / ``l``: 24h high and low.
    * ``v`` / ``q``: 24h base and quote volume.
    * ``b`` / ``a``: best bid and ask.
    """

    s: str
    c: str
    P: str
    h: str
    l: str  # noqa: E741
    v: str
    q: str
    b: str
    a: str


_OPTIONAL_FIELDS: Dict[str, str] = {
    "P": "price_change_percent",
    "h": "high_24h",
    "l": "low_24h",
    "v": "volume",
    "q": "quote_volume",
    "b": "bid",
    "a": "ask",
}


def normalize_ticker_event(msg: Any) -> PriceTick:
    """Normalise a ticker frame into a :class:`PriceTick`.

    Parameters
    ----------
    msg : Any
        Either a combined-stream frame with a ``data`` key or a bare
        ticker payload.  Values may be strings or numbers.

    Returns
    -------
    PriceTick
        The validated tick.

    Raises
    ------
    ValueError
        If ``s`` or ``c`` is missing or a value cannot be converted.
        Pydantic's ``ValidationError`` is a ``ValueError`` subclass, so a
        non-positive price is reported the same way.
    """
    if isinstance(msg, dict) and isinstance(msg.get("data"), dict):
        msg = msg["data"]
    if not isinstance(msg, dict) or "s" not in msg or "c" not in msg:
        raise ValueError("Ticker payload missing required keys 's' and 'c'")
    fields: Dict[str, Any] = {"symbol": str(msg["s"]), "price": float(msg["c"])}
    for key, name in _OPTIONAL_FIELDS.items():
        value = msg.get(key)
        if value is not None:
            fields[name] = float(value)
    return PriceTick(**fields)
