from __future__ import annotations

from typing import Mapping, Optional

_FULLWIDTH_START = 0xFF01
_FULLWIDTH_END = 0xFF5E
_FULLWIDTH_SHIFT = 0xFEE0
_IDEOGRAPHIC_SPACE = "\u3000"

# Exchange decorations seen in sheets (TYO:7203, JP:7203, 7203.T). Removed
# anywhere in the string, not only as a suffix: SHOP.TO becomes SHOPO.
_STRIP_TOKENS = ("TYO:", "JP:", ".T")


def to_half_width(text: str | None) -> str:
    if not text:
        return ""
    out = []
    for ch in str(text):
        code = ord(ch)
        if _FULLWIDTH_START <= code <= _FULLWIDTH_END:
            out.append(chr(code - _FULLWIDTH_SHIFT))
        elif ch == _IDEOGRAPHIC_SPACE:
            out.append(" ")
        else:
            out.append(ch)
    return "".join(out)


def normalize_ticker(ticker) -> str:
    """Canonical form used only for matching tickers across sources."""
    if ticker is None:
        return ""
    normalized = to_half_width(str(ticker)).upper()
    # Repeat until stable so normalize(normalize(t)) == normalize(t) even for
    # inputs like "TYO:TYO:7203" or "7203.T.T".
    while True:
        stripped = normalized
        for token in _STRIP_TOKENS:
            stripped = stripped.replace(token, "")
        stripped = stripped.strip()
        if stripped == normalized:
            return stripped
        normalized = stripped


def resolve_price(ticker, prices: Mapping[str, float]) -> Optional[float]:
    if not ticker or not prices:
        return None
    if ticker in prices:
        return prices[ticker]
    target = normalize_ticker(ticker)
    if not target:
        return None
    for key, price in prices.items():
        if normalize_ticker(key) == target:
            return price
    return None


def relevant_prices(tickers, prices: Mapping[str, float]) -> dict[str, float]:
    """Subset of ``prices`` keyed by the given tickers, for tickers that resolve."""
    out: dict[str, float] = {}
    for ticker in tickers:
        price = resolve_price(ticker, prices)
        if price is not None:
            out[ticker] = price
    return out
