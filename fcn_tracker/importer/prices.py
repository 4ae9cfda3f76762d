from __future__ import annotations

from ..errors import ImportParseError
from ..pricing.tickers import normalize_ticker
from ..utils import parse_number
from .headers import find_header

PRICE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "ticker": ("ticker", "symbol", "代號", "代碼", "標的", "股票", "code"),
    "price": ("price", "last", "close", "現價", "價格", "收盤", "報價"),
}


def extract_prices(grid: list[list[str]]) -> dict[str, float]:
    """Pull a ticker -> price table out of a quote sheet.

    Uses a ticker/price header when one exists; otherwise every row whose first
    two cells look like ``ticker, number`` counts.
    """
    try:
        header = find_header(grid, synonyms=PRICE_SYNONYMS, anchor="ticker")
    except ImportParseError:
        header = None

    if header is not None and "price" in header.columns:
        t_idx = header.columns["ticker"]
        p_idx = header.columns["price"]
        rows = grid[header.row_index + 1:]
    else:
        t_idx, p_idx = 0, 1
        rows = grid

    prices: dict[str, float] = {}
    for row in rows:
        if len(row) <= max(t_idx, p_idx):
            continue
        ticker = normalize_ticker(row[t_idx])
        price = parse_number(row[p_idx])
        if not ticker or price is None:
            continue
        prices[ticker] = price
    if not prices:
        raise ImportParseError(
            f"No ticker/price pairs found in the sheet. First row was: {grid[0] if grid else []}"
        )
    return prices
