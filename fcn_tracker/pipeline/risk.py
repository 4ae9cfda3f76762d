from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping

import pandas as pd

from ..models import Position, RiskStatus, RiskView, UnderlyingRisk
from ..pricing.tickers import resolve_price

NEAR_KI_BAND = 5.0


def monthly_coupon(nominal: float, coupon_rate: float) -> int:
    """Monthly coupon, rounded half away from zero."""
    try:
        raw = Decimal(str(nominal)) * Decimal(str(coupon_rate)) / Decimal(100) / Decimal(12)
        return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except (ArithmeticError, ValueError):
        return 0


def risk_status(performance: float, ki_level: float, ko_level: float) -> RiskStatus:
    # Breach risk outranks redemption readiness.
    if performance <= ki_level:
        return RiskStatus.KI_HIT
    if performance <= ki_level + NEAR_KI_BAND:
        return RiskStatus.NEAR_KI
    if performance >= ko_level:
        return RiskStatus.KO_READY
    return RiskStatus.NORMAL


def _underlying_risk(ticker: str, entry_price: float, prices: Mapping[str, float], position: Position) -> UnderlyingRisk:
    market = resolve_price(ticker, prices)
    current = market if market is not None else entry_price
    if entry_price and math.isfinite(entry_price) and entry_price > 0 and current is not None and math.isfinite(current):
        performance = current / entry_price * 100
    else:
        performance = 100.0
    return UnderlyingRisk(
        ticker=ticker,
        entry_price=entry_price,
        current_price=current,
        performance=performance,
        ki_price=entry_price * position.ki_level / 100,
        ko_price=entry_price * position.ko_level / 100,
        strike_price=entry_price * position.strike_level / 100,
    )


def classify(position: Position, prices: Mapping[str, float]) -> RiskView:
    details = [_underlying_risk(u.ticker, u.entry_price, prices, position) for u in position.underlyings]
    laggard = None
    for detail in details:
        if laggard is None or detail.performance < laggard.performance:
            laggard = detail
    if laggard is None:
        laggard = UnderlyingRisk(
            ticker="N/A", entry_price=0, current_price=0, performance=0,
            ki_price=0, ko_price=0, strike_price=0,
        )
        status = RiskStatus.NORMAL
    else:
        status = risk_status(laggard.performance, position.ki_level, position.ko_level)
    return RiskView(
        position=position,
        underlyings=details,
        laggard=laggard,
        risk_status=status,
        monthly_coupon=monthly_coupon(position.nominal, position.coupon_rate),
    )


def classify_all(positions: Iterable[Position], prices: Mapping[str, float]) -> list[RiskView]:
    return [classify(p, prices) for p in positions]


def summarize(views: list[RiskView]) -> dict:
    if not views:
        return {"by_currency": {}, "ki_count": 0, "ko_count": 0, "positions_count": 0}
    df = pd.DataFrame(
        [
            {
                "currency": v.position.currency,
                "nominal": v.position.nominal,
                "monthly": v.monthly_coupon,
                "status": v.risk_status.value,
            }
            for v in views
        ]
    )
    grouped = df.groupby("currency", sort=True)[["nominal", "monthly"]].sum()
    by_currency = {
        str(ccy): {"nominal": float(row["nominal"]), "monthly": int(row["monthly"])}
        for ccy, row in grouped.iterrows()
    }
    return {
        "by_currency": by_currency,
        "ki_count": int(df["status"].str.contains("KI").sum()),
        "ko_count": int(df["status"].str.contains("KO").sum()),
        "positions_count": int(len(df)),
    }
