from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from typing import Iterable, Optional

import structlog

from .config import settings
from .db import get_conn, migrate
from .errors import NotFoundError, StoreError
from .models import Client, ImportResult, Position, RiskView, Underlying
from .pipeline.risk import classify_all, summarize
from .pricing.tickers import resolve_price
from .utils import local_stamp, now_utc_iso

log = structlog.get_logger()

NO_UPDATE_LABEL = "尚無紀錄"


def _clean_underlyings(items) -> list[dict]:
    out = []
    for item in items or []:
        data = item.model_dump(by_alias=True) if isinstance(item, Underlying) else dict(item)
        ticker = str(data.get("ticker") or "").strip().upper()
        if not ticker:
            continue
        out.append({"ticker": ticker, "entryPrice": data.get("entryPrice", data.get("entry_price"))})
    if not out:
        raise StoreError("at least one underlying ticker is required")
    return out


def _wire_keys(data: dict) -> dict:
    """Rename snake_case field names to their camelCase aliases."""
    out = {}
    for key, value in (data or {}).items():
        field = Position.model_fields.get(key)
        out[field.alias if field is not None and field.alias else key] = value
    return out


class PortfolioStore:
    """Owns clients, positions and the market price table.

    All writes go through this object; readers get copies, so risk views can be
    recomputed at any time without locking.
    """

    def __init__(self, conn: sqlite3.Connection | None = None, default_client_name: str | None = None):
        self.conn = conn
        self.default_client_name = default_client_name or settings.default_client_name
        self.clients: list[Client] = []
        self.positions: list[Position] = []
        self.prices: dict[str, float] = {}
        self.last_updated: str = NO_UPDATE_LABEL
        self.sheet_id: Optional[str] = None
        self._lock = threading.RLock()
        if self.conn is not None:
            migrate(self.conn)
            self.load()
        self._ensure_client()

    @classmethod
    def open(cls, db_path: str | None = None) -> "PortfolioStore":
        return cls(get_conn(db_path or settings.db_path))

    # --- persistence ---

    def load(self):
        cur = self.conn.cursor()
        with self._lock:
            self.clients = [
                Client(id=row[0], name=row[1])
                for row in cur.execute("SELECT id, name FROM clients ORDER BY sort_order").fetchall()
            ]
            self.positions = [
                Position.model_validate(json.loads(row[0]))
                for row in cur.execute("SELECT payload_json FROM positions ORDER BY sort_order").fetchall()
            ]
            self.prices = {
                row[0]: row[1]
                for row in cur.execute("SELECT ticker, price FROM market_prices ORDER BY rowid").fetchall()
            }
            meta = dict(cur.execute("SELECT key, value FROM metadata").fetchall())
            self.last_updated = meta.get("last_updated", NO_UPDATE_LABEL)
            self.sheet_id = meta.get("sheet_id") or None

    def save(self) -> bool:
        """Best-effort write of the whole state. Returns False when the write failed."""
        if self.conn is None:
            return True
        cur = self.conn.cursor()
        now = now_utc_iso()
        try:
            cur.execute("BEGIN")
            cur.execute("DELETE FROM positions")
            cur.execute("DELETE FROM clients")
            cur.execute("DELETE FROM market_prices")
            cur.executemany(
                "INSERT INTO clients(id, name, sort_order) VALUES(?,?,?)",
                [(c.id, c.name, i) for i, c in enumerate(self.clients)],
            )
            cur.executemany(
                "INSERT INTO positions(id, client_id, sort_order, payload_json) VALUES(?,?,?,?)",
                [
                    (str(p.id), p.client_id, i, json.dumps(p.model_dump(by_alias=True), ensure_ascii=False))
                    for i, p in enumerate(self.positions)
                ],
            )
            cur.executemany(
                "INSERT INTO market_prices(ticker, price, updated_at_utc) VALUES(?,?,?)",
                [(t, float(p), now) for t, p in self.prices.items()],
            )
            cur.execute(
                "INSERT INTO metadata(key, value) VALUES('last_updated', ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (self.last_updated,),
            )
            cur.execute(
                "INSERT INTO metadata(key, value) VALUES('sheet_id', ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (self.sheet_id or "",),
            )
            cur.execute("COMMIT")
            return True
        except sqlite3.Error as exc:
            if self.conn.in_transaction:
                cur.execute("ROLLBACK")
            log.warning("store_save_failed", err=str(exc))
            return False

    # --- clients ---

    def _ensure_client(self):
        if not self.clients:
            self.clients.append(Client(id="c1", name=self.default_client_name))

    def get_client(self, client_id: str) -> Client:
        for client in self.clients:
            if client.id == client_id:
                return client
        raise NotFoundError(f"client {client_id} not found")

    def add_client(self, name: str) -> Client:
        name = (name or "").strip()
        if not name:
            raise StoreError("client name is required")
        with self._lock:
            client = Client(id=f"c{uuid.uuid4().hex[:12]}", name=name)
            self.clients.append(client)
            self.save()
        log.info("client_added", client_id=client.id)
        return client

    def delete_client(self, client_id: str):
        with self._lock:
            self.get_client(client_id)
            if len(self.clients) <= 1:
                raise StoreError("at least one client must remain")
            self.clients = [c for c in self.clients if c.id != client_id]
            before = len(self.positions)
            self.positions = [p for p in self.positions if p.client_id != client_id]
            self.save()
        log.info("client_deleted", client_id=client_id, positions_removed=before - len(self.positions))

    # --- positions ---

    def positions_for(self, client_id: str | None = None) -> list[Position]:
        with self._lock:
            if client_id is None:
                return list(self.positions)
            return [p for p in self.positions if p.client_id == client_id]

    def get_position(self, position_id) -> Position:
        for pos in self.positions:
            if str(pos.id) == str(position_id):
                return pos
        raise NotFoundError(f"position {position_id} not found")

    def _next_position_id(self) -> int:
        ids = [p.id for p in self.positions if isinstance(p.id, int)]
        return max(ids, default=0) + 1

    def register_entry_prices(self, underlyings: Iterable[Underlying]) -> int:
        added = 0
        for u in underlyings:
            if resolve_price(u.ticker, self.prices) is None:
                self.prices[u.ticker] = u.entry_price
                added += 1
        return added

    def add_position(self, client_id: str, data: dict) -> Position:
        with self._lock:
            self.get_client(client_id)
            payload = dict(data)
            payload["id"] = self._next_position_id()
            payload["clientId"] = client_id
            payload.pop("client_id", None)
            payload["underlyings"] = _clean_underlyings(payload.get("underlyings"))
            if "productName" not in payload and "product_name" not in payload:
                payload["productName"] = ""
            if not payload.get("issuer"):
                payload["issuer"] = "Self"
            position = Position.model_validate(payload)
            if not position.product_name:
                tickers = "/".join(u.ticker for u in position.underlyings)
                position = position.model_copy(update={"product_name": f"FCN {tickers}"})
            self.register_entry_prices(position.underlyings)
            self.positions.append(position)
            self.save()
        log.info("position_added", position_id=position.id, client_id=client_id)
        return position

    def update_position(self, position_id, data: dict) -> Position:
        with self._lock:
            current = self.get_position(position_id)
            patch = _wire_keys(data)
            if "underlyings" in patch:
                patch["underlyings"] = _clean_underlyings(patch["underlyings"])
            merged = current.model_dump(by_alias=True)
            merged.update(patch)
            merged["id"] = current.id
            updated = Position.model_validate(merged)
            self.get_client(updated.client_id)
            self.register_entry_prices(updated.underlyings)
            self.positions = [updated if str(p.id) == str(position_id) else p for p in self.positions]
            self.save()
        return updated

    def delete_position(self, position_id):
        with self._lock:
            self.get_position(position_id)
            self.positions = [p for p in self.positions if str(p.id) != str(position_id)]
            self.save()

    # --- prices ---

    def active_tickers(self) -> list[str]:
        return sorted({u.ticker for p in self.positions for u in p.underlyings})

    def update_prices(self, prices: dict[str, float], source: str | None = None) -> int:
        with self._lock:
            for ticker, price in prices.items():
                self.prices[ticker] = float(price)
            self.last_updated = local_stamp(settings.local_tz, source)
            self.save()
        log.info("prices_updated", count=len(prices), source=source)
        return len(prices)

    def set_sheet_id(self, sheet_id: str | None):
        with self._lock:
            self.sheet_id = sheet_id
            self.save()

    # --- bulk load ---

    def replace_portfolio(self, result: ImportResult):
        if not result.clients or not result.positions:
            raise StoreError("import produced no clients or positions")
        with self._lock:
            self.clients = list(result.clients)
            self.positions = list(result.positions)
            added = 0
            for pos in self.positions:
                added += self.register_entry_prices(pos.underlyings)
            self.save()
        log.info(
            "portfolio_replaced",
            clients=len(result.clients),
            positions=len(result.positions),
            prices_registered=added,
        )

    # --- derived views ---

    def risk_views(self, client_id: str | None = None) -> list[RiskView]:
        with self._lock:
            positions = self.positions_for(client_id)
            prices = dict(self.prices)
        return classify_all(positions, prices)

    def summary(self, client_id: str | None = None) -> dict:
        return summarize(self.risk_views(client_id))
