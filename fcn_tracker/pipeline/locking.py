import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta

from ..errors import StoreError

def acquire_lock(conn: sqlite3.Connection, name: str, owner: str, ttl_seconds: int = 600) -> bool:
    # Each statement is atomic, so two callers sharing a connection cannot both win.
    cur = conn.cursor()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(seconds=ttl_seconds)
    cur.execute(
        "INSERT INTO locks(name, owner, acquired_at_utc, expires_at_utc) VALUES(?,?,?,?) "
        "ON CONFLICT(name) DO NOTHING",
        (name, owner, now.isoformat(), exp.isoformat()),
    )
    if cur.rowcount == 1:
        return True
    cur.execute(
        "UPDATE locks SET owner=?, acquired_at_utc=?, expires_at_utc=? WHERE name=? AND expires_at_utc < ?",
        (owner, now.isoformat(), exp.isoformat(), name, now.isoformat()),
    )
    return cur.rowcount == 1

def release_lock(conn: sqlite3.Connection, name: str, owner: str):
    conn.execute("DELETE FROM locks WHERE name=? AND owner=?", (name, owner))

@contextmanager
def held_lock(conn: sqlite3.Connection, name: str, owner: str, ttl_seconds: int = 600):
    if not acquire_lock(conn, name, owner, ttl_seconds):
        raise StoreError("lock_held")
    try:
        yield
    finally:
        release_lock(conn, name, owner)
