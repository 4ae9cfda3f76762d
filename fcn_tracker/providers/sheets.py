from __future__ import annotations

import re
from typing import Optional

_SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9\-_]+)")
_PUBLISHED_RE = re.compile(r"/spreadsheets/d/e/([a-zA-Z0-9\-_]+)")
_GID_RE = re.compile(r"[#&?]gid=(\d+)")

SHEETS_BASE = "https://docs.google.com/spreadsheets/d"


def parse_sheet_id(text: str | None) -> Optional[str]:
    """Spreadsheet id from a sheet URL, or the text itself when it looks like a bare id."""
    value = (text or "").strip()
    if not value:
        return None
    if _PUBLISHED_RE.search(value):
        return None
    match = _SHEET_ID_RE.search(value)
    if match:
        return match.group(1)
    if len(value) > 20 and "/" not in value:
        return value
    return None


def sheet_export_url(sheet_id: str, fmt: str = "csv", gid: str | None = None) -> str:
    url = f"{SHEETS_BASE}/{sheet_id}/pub?output={fmt}"
    if gid:
        url += f"&gid={gid}"
    return url


def resolve_sheet_url(source: str, fmt: str = "csv") -> str:
    """Turn a sheet id or any sheet link into a URL that returns raw content."""
    value = (source or "").strip()
    if not value:
        raise ValueError("sheet source is empty")
    gid_match = _GID_RE.search(value)
    gid = gid_match.group(1) if gid_match else None

    published = _PUBLISHED_RE.search(value)
    if published:
        base = f"{SHEETS_BASE}/e/{published.group(1)}/pub?output={fmt}"
        return base + (f"&gid={gid}" if gid else "")

    if value.startswith(("http://", "https://")) and ("output=" in value or "export?" in value or "/gviz/" in value):
        return value

    sheet_id = parse_sheet_id(value)
    if sheet_id:
        return sheet_export_url(sheet_id, fmt=fmt, gid=gid)
    if value.startswith(("http://", "https://")):
        return value
    raise ValueError(f"not a sheet id or URL: {value[:80]}")
