from __future__ import annotations

import csv

import pandas as pd

from ..models import RiskView

EXPORT_COLUMNS = [
    "投資人",
    "產品名稱",
    "發行商",
    "幣別",
    "名目本金",
    "年息(%)",
    "到期日",
    "KI(%)",
    "KO(%)",
    "履約(%)",
    "最差標的",
    "現價",
    "進場價",
    "履約價",
    "表現(%)",
    "狀態",
]
UNKNOWN_CLIENT = "未知"


def _plain(value):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def export_frame(views: list[RiskView], client_names: dict[str, str]) -> pd.DataFrame:
    rows = []
    for view in views:
        pos = view.position
        lag = view.laggard
        rows.append(
            [
                client_names.get(pos.client_id, UNKNOWN_CLIENT),
                pos.product_name,
                pos.issuer,
                pos.currency,
                _plain(pos.nominal),
                _plain(pos.coupon_rate),
                pos.maturity_date,
                _plain(pos.ki_level),
                _plain(pos.ko_level),
                _plain(pos.strike_level),
                lag.ticker,
                _plain(lag.current_price),
                _plain(lag.entry_price),
                _plain(round(lag.strike_price, 4)),
                f"{lag.performance:.2f}",
                view.risk_status.value,
            ]
        )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS, dtype=object)


def export_csv(views: list[RiskView], client_names: dict[str, str], bom: bool = False) -> str:
    text = export_frame(views, client_names).to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return ("\ufeff" + text) if bom else text
