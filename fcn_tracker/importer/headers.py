from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..errors import ImportParseError

HEADER_SCAN_ROWS = 20
ANCHOR_FIELD = "product"

# Matched by substring against lowercased cells. Fields are resolved in this
# order and a cell taken by an earlier field is not offered to later ones;
# within a field, earlier synonyms win over later ones.
FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "product": ("product", "產品", "商品", "title", "標的名稱", "名稱", "name"),
    "client": ("client", "investor", "customer", "owner", "投資人", "客戶", "持有人"),
    "issuer": ("issuer", "bank", "發行", "券商"),
    "currency": ("currency", "ccy", "幣別", "幣"),
    "nominal": ("nominal", "notional", "principal", "amount", "本金", "名目", "金額"),
    "coupon": ("coupon", "年息", "配息", "票息", "利率"),
    "strike_date": ("strike date", "trade date", "交易日", "進場日", "期初"),
    "ko_observation_start_date": ("ko obs", "observation", "觀察"),
    "maturity": ("maturity", "到期"),
    "tenor": ("tenor", "天期", "期間"),
    "underlyings": ("underlying", "ticker", "連結標的", "標的", "股票"),
    "ki": ("knock-in", "knock in", "ki", "敲入", "下限"),
    "ko": ("knock-out", "knock out", "autocall", "ko", "敲出", "提前出場"),
    "strike": ("strike", "履約", "執行"),
}


@dataclass
class HeaderInfo:
    row_index: int
    columns: dict[str, int] = field(default_factory=dict)

    def index_for(self, name: str) -> Optional[int]:
        return self.columns.get(name)


def match_columns(row: list[str], synonyms: dict[str, tuple[str, ...]] | None = None) -> dict[str, int]:
    table = synonyms or FIELD_SYNONYMS
    cells = [str(cell or "").strip().lower() for cell in row]
    claimed: set[int] = set()
    columns: dict[str, int] = {}
    for name, terms in table.items():
        for term in terms:
            idx = next(
                (i for i, cell in enumerate(cells) if i not in claimed and cell and term in cell),
                None,
            )
            if idx is not None:
                columns[name] = idx
                claimed.add(idx)
                break
    return columns


def find_header(
    grid: list[list[str]],
    synonyms: dict[str, tuple[str, ...]] | None = None,
    anchor: str = ANCHOR_FIELD,
    scan_rows: int = HEADER_SCAN_ROWS,
) -> HeaderInfo:
    for row_index, row in enumerate(grid[:scan_rows]):
        columns = match_columns(row, synonyms)
        if anchor in columns:
            return HeaderInfo(row_index=row_index, columns=columns)
    first_row = grid[0] if grid else []
    raise ImportParseError(
        f"No header row with a product/name column in the first {scan_rows} rows. "
        f"First row was: {first_row}"
    )
