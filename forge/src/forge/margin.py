"""
Margin, PnL and fee arithmetic.

Pure functions shared by the order router and the matching engine.
All money values are plain floats; callers compare them with a
tolerance rather than exact equality.

Units: prices and notionals computed from ``amount * price`` are in the
quote currency of the symbol.  Balances, margins and PnL are in the
account currency.  ``quote_rate`` converts between the two
(``account = quote / quote_rate``).
"""

from __future__ import annotations

from typing import Tuple

# A close for at least this fraction of the position is a full close.
FULL_CLOSE_RATIO = 0.99


def token_quantity(margin: float, leverage: int, reference_price: float, quote_rate: float) -> float:
    """Quantity bought with ``margin`` at ``leverage`` and ``reference_price``."""
    buying_power_quote = margin * leverage * quote_rate
    return buying_power_quote / reference_price


def margin_required(amount: float, fill_price: float, leverage: int, quote_rate: float) -> float:
    return (amount * fill_price) / leverage / quote_rate


def liquidation_price(entry_price: float, leverage: int, maintenance_margin_rate: float, is_long: bool = True) -> float:
    """Price at which a position's margin minus the maintenance buffer is gone.

    Long:  ``entry * (1 - 1/leverage + mmr)``
    Short: ``entry * (1 + 1/leverage - mmr)``
    """
    if is_long:
        return entry_price * (1 - 1 / leverage + maintenance_margin_rate)
    return entry_price * (1 + 1 / leverage - maintenance_margin_rate)


def is_liquidated(price: float, liquidation: float, is_long: bool) -> bool:
    return price <= liquidation if is_long else price >= liquidation


def weighted_average_price(old_amount: float, old_avg: float, add_amount: float, add_price: float) -> float:
    return (old_amount * old_avg + add_amount * add_price) / (old_amount + add_amount)


def unrealized_pnl(
    price: float,
    avg_entry_price: float,
    amount: float,
    leverage: int,
    is_long: bool,
    quote_rate: float,
) -> Tuple[float, float]:
    """Return ``(pnl_account_currency, pnl_percent_of_initial_margin)``.

    The percentage is computed in quote units, so it does not depend on
    ``quote_rate``.
    """
    price_diff = price - avg_entry_price
    pnl_raw = price_diff if is_long else -price_diff
    pnl_quote = pnl_raw * amount
    initial_margin_quote = (avg_entry_price * amount) / leverage
    pnl_percent = pnl_quote / initial_margin_quote * 100 if initial_margin_quote else 0.0
    return pnl_quote / quote_rate, pnl_percent


def notional_value(price: float, amount: float, quote_rate: float) -> float:
    return price * amount / quote_rate


def close_ratio(close_amount: float, position_amount: float) -> float:
    """Fraction of the position being closed, snapped to 1.0 for full closes."""
    ratio = close_amount / position_amount
    if ratio >= FULL_CLOSE_RATIO:
        return 1.0
    return ratio


def trading_fee(amount: float, fill_price: float, fee_rate: float, quote_rate: float) -> float:
    return amount * fill_price * fee_rate / quote_rate


def drawdown(peak_balance: float, balance: float) -> float:
    if peak_balance <= 0:
        return 0.0
    return (peak_balance - balance) / peak_balance
