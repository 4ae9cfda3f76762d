import sqlite3
from pathlib import Path

def get_conn(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)  # autocommit
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn

DDL = [
    """
CREATE TABLE IF NOT EXISTS clients (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  sort_order INTEGER NOT NULL
);
""",
    # Positions keep their full wire payload; client_id is lifted out for cascades.
    """
CREATE TABLE IF NOT EXISTS positions (
  id TEXT PRIMARY KEY,
  client_id TEXT NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
  sort_order INTEGER NOT NULL,
  payload_json TEXT NOT NULL
);
""",
    "CREATE INDEX IF NOT EXISTS ix_positions_client ON positions(client_id, sort_order);",

    # Raw ticker keys; rowid order is the lookup order for fuzzy matches.
    """
CREATE TABLE IF NOT EXISTS market_prices (
  ticker TEXT PRIMARY KEY,
  price REAL NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",

    """
CREATE TABLE IF NOT EXISTS metadata (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
""",

    # Import / price-sync runs
    """
CREATE TABLE IF NOT EXISTS runs (
  run_id TEXT PRIMARY KEY,
  kind TEXT NOT NULL,
  source TEXT,
  started_at_utc TEXT NOT NULL,
  finished_at_utc TEXT,
  status TEXT NOT NULL,         -- 'running'|'succeeded'|'failed'
  error_message TEXT,
  result_json TEXT
);
""",

    """
CREATE TABLE IF NOT EXISTS locks (
  name TEXT PRIMARY KEY,
  owner TEXT NOT NULL,
  acquired_at_utc TEXT NOT NULL,
  expires_at_utc TEXT NOT NULL
);
""",
]

def migrate(conn: sqlite3.Connection):
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    run_cols = {row[1] for row in cur.execute("PRAGMA table_info(runs)").fetchall()}
    if "result_json" not in run_cols:
        cur.execute("ALTER TABLE runs ADD COLUMN result_json TEXT")
