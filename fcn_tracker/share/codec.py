from __future__ import annotations

import base64

FORMAT_VERSION = 1
GUEST_CLIENT_ID = "guest"
SHARE_PREFIX = "#share="

# Tuple layout of a minified position.
POSITION_FIELDS = (
    "productName",
    "issuer",
    "nominal",
    "currency",
    "couponRate",
    "koLevel",
    "kiLevel",
    "strikeLevel",
    "strikeDate",
    "koObservationStartDate",
    "maturityDate",
    "tenor",
)


def _minify_position(pos: dict) -> list:
    row = [pos.get(name) for name in POSITION_FIELDS]
    row.append([[u.get("ticker"), u.get("entryPrice")] for u in pos.get("underlyings") or []])
    return row


def _unminify_position(row: list, index: int) -> dict:
    if not isinstance(row, list) or len(row) != len(POSITION_FIELDS) + 1:
        raise ValueError(f"position {index} has an unexpected shape")
    pos = {"id": index, "clientId": GUEST_CLIENT_ID}
    pos.update(zip(POSITION_FIELDS, row))
    pos["underlyings"] = [{"ticker": pair[0], "entryPrice": pair[1]} for pair in row[-1] or []]
    pos["status"] = "Active"
    return pos


def minify(payload: dict) -> dict:
    return {
        "v": FORMAT_VERSION,
        "n": payload.get("clientName"),
        "t": payload.get("lastUpdated"),
        "p": [_minify_position(pos) for pos in payload.get("positions") or []],
        "m": dict(payload.get("prices") or {}),
    }


def unminify(compact: dict) -> dict:
    if "v" not in compact:
        return compact
    return {
        "clientName": compact.get("n"),
        "lastUpdated": compact.get("t"),
        "positions": [_unminify_position(row, i) for i, row in enumerate(compact.get("p") or [])],
        "prices": dict(compact.get("m") or {}),
    }


def encode_text(text: str) -> str:
    raw = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return raw.replace("+", "-").replace("/", "_").rstrip("=")


def decode_text(token: str) -> str:
    data = token.strip().replace("-", "+").replace("_", "/")
    data += "=" * (-len(data) % 4)
    return base64.b64decode(data, validate=True).decode("utf-8")
