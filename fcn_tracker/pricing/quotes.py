from __future__ import annotations

import re

from .tickers import normalize_ticker, to_half_width
from ..utils import parse_number

# "NVDA 800", "7203\t3,550", "TYO:7203 = ¥3550", "AAPL: $175.20"
_LINE_RE = re.compile(r"^\s*([A-Za-z0-9.:\-^]+)[^\dA-Za-z]+?(-?\d[\d,]*(?:\.\d+)?)")
_CURRENCY_RE = re.compile(r"(?i)[¥$€\"']|\b(?:JPY|USD|TWD|HKD)\b")


def parse_price_lines(text: str) -> dict[str, float]:
    """Parse pasted "ticker price" lines into a price table.

    Tickers are stored in normalized form. Lines without a usable number are
    ignored; later lines win for a repeated ticker.
    """
    prices: dict[str, float] = {}
    for raw_line in (text or "").splitlines():
        line = _CURRENCY_RE.sub(" ", to_half_width(raw_line))
        match = _LINE_RE.match(line)
        if not match:
            continue
        ticker = normalize_ticker(match.group(1).rstrip(":"))
        price = parse_number(match.group(2))
        if not ticker or price is None:
            continue
        prices[ticker] = price
    return prices
