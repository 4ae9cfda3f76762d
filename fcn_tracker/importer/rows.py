from __future__ import annotations

import re
import uuid
from typing import Callable, Optional

import structlog

from ..models import (
    Client,
    ImportResult,
    Position,
    Underlying,
    DEFAULT_COUPON_RATE,
    DEFAULT_CURRENCY,
    DEFAULT_ENTRY_PRICE,
    DEFAULT_KI_LEVEL,
    DEFAULT_KO_LEVEL,
    DEFAULT_NOMINAL,
    DEFAULT_STRIKE_LEVEL,
    PLACEHOLDER_TICKER,
)
from ..utils import parse_number
from .headers import HeaderInfo

log = structlog.get_logger()

MIN_ROW_CELLS = 3
DEFAULT_CLIENT_LABEL = "預設投資人"

_UNDERLYING_SPLIT = re.compile(r"[/;|\r\n]+")
_TOKEN_SPLIT = re.compile(r"[\s:]+")


def _new_client_id() -> str:
    return f"c{uuid.uuid4().hex[:12]}"


def parse_underlyings(cell: str | None) -> list[Underlying]:
    """Parse ``NVDA:550/AMD:140`` style cells. Price defaults to 100."""
    out = []
    for chunk in _UNDERLYING_SPLIT.split(cell or ""):
        parts = [p for p in _TOKEN_SPLIT.split(chunk.strip()) if p]
        if not parts:
            continue
        ticker = parts[0].upper()
        numbers = [n for n in (parse_number(p) for p in parts[1:]) if n is not None]
        price = numbers[-1] if numbers else DEFAULT_ENTRY_PRICE
        out.append(Underlying(ticker=ticker, entry_price=price))
    return out


def _cell(row: list[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return str(row[idx] or "").strip()


def _num(row: list[str], idx: Optional[int], default: float) -> float:
    value = parse_number(_cell(row, idx))
    return default if value is None else value


def import_rows(
    grid: list[list[str]],
    header: HeaderInfo,
    default_client_name: str = DEFAULT_CLIENT_LABEL,
    client_id_factory: Callable[[], str] = _new_client_id,
) -> ImportResult:
    cols = header.columns
    product_idx = cols["product"]
    clients: dict[str, Client] = {}
    positions: list[Position] = []
    skipped = 0

    for row in grid[header.row_index + 1:]:
        product = _cell(row, product_idx)
        if len(row) < MIN_ROW_CELLS or not product:
            skipped += 1
            continue

        client_name = _cell(row, cols.get("client")) or default_client_name
        client = clients.get(client_name)
        if client is None:
            client = Client(id=client_id_factory(), name=client_name)
            clients[client_name] = client

        underlyings = parse_underlyings(_cell(row, cols.get("underlyings")))
        if not underlyings:
            underlyings = [Underlying(ticker=PLACEHOLDER_TICKER, entry_price=DEFAULT_ENTRY_PRICE)]

        positions.append(
            Position(
                id=len(positions) + 1,
                client_id=client.id,
                product_name=product,
                issuer=_cell(row, cols.get("issuer")),
                nominal=_num(row, cols.get("nominal"), DEFAULT_NOMINAL),
                currency=(_cell(row, cols.get("currency")) or DEFAULT_CURRENCY).upper(),
                coupon_rate=_num(row, cols.get("coupon"), DEFAULT_COUPON_RATE),
                strike_date=_cell(row, cols.get("strike_date")),
                ko_observation_start_date=_cell(row, cols.get("ko_observation_start_date")),
                maturity_date=_cell(row, cols.get("maturity")),
                tenor=_cell(row, cols.get("tenor")),
                ko_level=_num(row, cols.get("ko"), DEFAULT_KO_LEVEL),
                ki_level=_num(row, cols.get("ki"), DEFAULT_KI_LEVEL),
                strike_level=_num(row, cols.get("strike"), DEFAULT_STRIKE_LEVEL),
                underlyings=underlyings,
            )
        )

    log.debug("import_rows_parsed", positions=len(positions), clients=len(clients), skipped=skipped)
    return ImportResult(
        clients=list(clients.values()),
        positions=positions,
        skipped_rows=skipped,
        header_row=header.row_index,
    )
