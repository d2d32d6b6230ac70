"""
Portfolio risk figures shown next to the account.

The VaR figure is a deliberately crude parametric estimate: total
exposure times an assumed 5% daily volatility for crypto times the
one-sided 95% z-score.
"""

from __future__ import annotations

from typing import Iterable

from .margin import drawdown
from .models import Position, RiskMetrics

ASSUMED_DAILY_VOLATILITY = 0.05
Z_SCORE_95 = 1.65


def compute_risk_metrics(balance: float, peak_balance: float, positions: Iterable[Position]) -> RiskMetrics:
    positions = list(positions)
    exposure = sum(p.notional_value for p in positions)
    total = exposure + balance
    ratio = exposure / total * 100 if total > 0 else 0.0
    open_dd = abs(sum(p.unrealized_pnl for p in positions if p.unrealized_pnl < 0))
    return RiskMetrics(
        total_exposure=exposure,
        total_portfolio_value=total,
        exposure_ratio_pct=ratio,
        var_24h=exposure * ASSUMED_DAILY_VOLATILITY * Z_SCORE_95,
        open_drawdown=open_dd,
        drawdown=drawdown(peak_balance, balance),
        peak_balance=peak_balance,
    )
