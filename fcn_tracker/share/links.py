from __future__ import annotations

import json

import structlog
from pydantic import ValidationError

from ..errors import ShareCodecError
from ..models import Position
from ..pricing.tickers import relevant_prices
from ..utils import parse_number
from .codec import SHARE_PREFIX, decode_text, encode_text, minify, unminify

log = structlog.get_logger()

CORRUPT_MESSAGE = "Share link is invalid or corrupted"


def build_share_payload(store, client_id: str) -> dict:
    client = store.get_client(client_id)
    positions = store.positions_for(client_id)
    tickers = []
    for pos in positions:
        for u in pos.underlyings:
            if u.ticker not in tickers:
                tickers.append(u.ticker)
    return {
        "clientName": client.name,
        "lastUpdated": store.last_updated,
        "positions": [p.model_dump(by_alias=True) for p in positions],
        "prices": relevant_prices(tickers, store.prices),
    }


def _dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def encode_share(payload: dict) -> str:
    return encode_text(_dumps(minify(payload)))


def share_fragment(payload: dict) -> str:
    return f"{SHARE_PREFIX}{encode_share(payload)}"


def _strip_prefix(text: str) -> str:
    text = (text or "").strip()
    if SHARE_PREFIX in text:
        return text.split(SHARE_PREFIX, 1)[1]
    if text.startswith("share="):
        return text[len("share="):]
    return text


def _validated(payload) -> dict:
    """Reject anything that would only half-apply."""
    if not isinstance(payload, dict) or not isinstance(payload.get("positions"), list):
        raise ValueError("payload has no positions list")
    positions = [Position.model_validate(p).model_dump(by_alias=True) for p in payload["positions"]]
    prices = {}
    for ticker, price in (payload.get("prices") or {}).items():
        num = parse_number(price)
        if num is None:
            raise ValueError(f"price for {ticker} is not numeric")
        prices[str(ticker)] = num
    return {
        "clientName": payload.get("clientName"),
        "lastUpdated": payload.get("lastUpdated"),
        "positions": positions,
        "prices": prices,
    }


def decode_share(text: str) -> dict:
    try:
        compact = json.loads(decode_text(_strip_prefix(text)))
        return _validated(unminify(compact))
    except (ValueError, TypeError, AttributeError, ValidationError) as exc:
        log.warning("share_decode_failed", err=str(exc))
        raise ShareCodecError(CORRUPT_MESSAGE) from exc


def export_json(payload: dict) -> str:
    return json.dumps(minify(payload), ensure_ascii=False, indent=2)


def load_export_json(text: str) -> dict:
    try:
        return _validated(unminify(json.loads(text)))
    except (ValueError, TypeError, AttributeError, ValidationError) as exc:
        log.warning("export_load_failed", err=str(exc))
        raise ShareCodecError("Exported file is invalid or corrupted") from exc
