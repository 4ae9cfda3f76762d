import json
import sqlite3

from ..utils import now_utc_iso

def start_run(conn: sqlite3.Connection, run_id: str, kind: str, source: str | None = None):
    conn.execute(
        "INSERT OR REPLACE INTO runs(run_id, kind, source, started_at_utc, status) VALUES(?,?,?,?,?)",
        (run_id, kind, source, now_utc_iso(), 'running'),
    )

def finish_run_ok(conn: sqlite3.Connection, run_id: str, result: dict | None = None):
    conn.execute(
        "UPDATE runs SET finished_at_utc=?, status=?, result_json=? WHERE run_id=?",
        (now_utc_iso(), 'succeeded', json.dumps(result or {}, ensure_ascii=False), run_id),
    )

def finish_run_fail(conn: sqlite3.Connection, run_id: str, err: str):
    conn.execute(
        "UPDATE runs SET finished_at_utc=?, status=?, error_message=? WHERE run_id=?",
        (now_utc_iso(), 'failed', err[:1000], run_id),
    )

def get_run_status(conn: sqlite3.Connection, run_id: str):
    cur = conn.cursor()
    row = cur.execute(
        "SELECT run_id, kind, started_at_utc, finished_at_utc, status, error_message, result_json FROM runs WHERE run_id=?",
        (run_id,),
    ).fetchone()
    if not row: return None
    return {
        'run_id': row[0], 'kind': row[1], 'started_at_utc': row[2], 'finished_at_utc': row[3],
        'status': row[4], 'error_message': row[5], 'result': json.loads(row[6]) if row[6] else None,
    }
