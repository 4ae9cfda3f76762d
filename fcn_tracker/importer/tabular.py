from __future__ import annotations

import re

from bs4 import BeautifulSoup

from ..errors import ImportParseError

_LINE_SPLIT = re.compile(r"\r?\n")


def looks_like_html(text: str) -> bool:
    stripped = (text or "").strip()
    return stripped.startswith("<") and "<table" in stripped.lower()


def _finish_field(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value.replace('""', '"')


def split_csv_line(line: str) -> list[str]:
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
            current.append(ch)
        elif ch == "," and not in_quotes:
            fields.append(_finish_field("".join(current)))
            current = []
        else:
            current.append(ch)
    fields.append(_finish_field("".join(current)))
    return fields


def parse_csv(text: str) -> list[list[str]]:
    rows = []
    for line in _LINE_SPLIT.split(text.lstrip("\ufeff")):
        if not line.strip():
            continue
        rows.append(split_csv_line(line))
    return rows


def parse_html(text: str) -> list[list[str]]:
    try:
        soup = BeautifulSoup(text, "html.parser")
        for br in soup.find_all("br"):
            br.replace_with("\n")
        tr_nodes = soup.find_all("tr")
    except Exception as exc:
        raise ImportParseError(
            f"Could not read the HTML table ({exc}). Publish the sheet as CSV or paste the table again."
        ) from exc
    if not tr_nodes:
        raise ImportParseError(
            "The HTML has no table rows. Publish the sheet to the web (CSV or web page) and try again."
        )
    rows = []
    for tr in tr_nodes:
        cells = [cell.get_text().strip() for cell in tr.find_all(["td", "th"])]
        if any(cells):
            rows.append(cells)
    return rows


def parse_table(raw_text: str) -> list[list[str]]:
    text = raw_text or ""
    if looks_like_html(text):
        return parse_html(text)
    return parse_csv(text)
