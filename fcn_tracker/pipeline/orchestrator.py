import time, uuid
import structlog
from ..config import settings
from ..errors import FcnError, ImportParseError
from ..importer.headers import find_header
from ..importer.prices import extract_prices
from ..importer.rows import import_rows
from ..importer.tabular import parse_table
from ..models import ImportResult
from ..pricing.quotes import parse_price_lines
from ..providers.fetcher import ResilientFetcher
from ..providers.sheets import parse_sheet_id, resolve_sheet_url
from ..store import PortfolioStore
from .locking import held_lock
from .utils import start_run, finish_run_ok, finish_run_fail, get_run_status

log = structlog.get_logger()

WRITE_LOCK = "portfolio_write"
_store: PortfolioStore | None = None

def get_store() -> PortfolioStore:
    global _store
    if _store is None:
        _store = PortfolioStore.open(settings.db_path)
    return _store

def parse_portfolio(text: str, default_client_name: str | None = None) -> ImportResult:
    grid = parse_table(text)
    if not grid:
        raise ImportParseError("The import content is empty.")
    header = find_header(grid)
    result = import_rows(grid, header, default_client_name=default_client_name or settings.default_client_name)
    if not result.positions:
        raise ImportParseError(
            f"Header found on row {header.row_index + 1} but no row below it has a product name."
        )
    return result

def import_portfolio_text(store: PortfolioStore, text: str) -> ImportResult:
    result = parse_portfolio(text, store.default_client_name)
    store.replace_portfolio(result)
    log.info(
        "import_finished",
        clients=len(result.clients),
        positions=len(result.positions),
        skipped_rows=result.skipped_rows,
    )
    return result

async def import_portfolio_from_sheet(store: PortfolioStore, source: str, fetcher: ResilientFetcher | None = None) -> ImportResult:
    url = resolve_sheet_url(source)
    text = await (fetcher or ResilientFetcher()).fetch_text(url)
    result = import_portfolio_text(store, text)
    sheet_id = parse_sheet_id(source)
    if sheet_id:
        store.set_sheet_id(sheet_id)
    return result

def apply_price_paste(store: PortfolioStore, text: str) -> int:
    prices = parse_price_lines(text)
    if not prices:
        return 0
    return store.update_prices(prices, source="paste")

def sync_prices_text(store: PortfolioStore, text: str) -> dict[str, float]:
    prices = extract_prices(parse_table(text))
    store.update_prices(prices, source="sheet")
    return prices

async def sync_prices_from_sheet(store: PortfolioStore, source: str | None = None, fetcher: ResilientFetcher | None = None) -> dict[str, float]:
    source = source or store.sheet_id
    if not source:
        raise ImportParseError("No sheet configured for price sync.")
    url = resolve_sheet_url(source)
    text = await (fetcher or ResilientFetcher()).fetch_text(url)
    prices = sync_prices_text(store, text)
    sheet_id = parse_sheet_id(source)
    if sheet_id and sheet_id != store.sheet_id:
        store.set_sheet_id(sheet_id)
    return prices

def trigger_import(background, source: str, store: PortfolioStore | None = None) -> str:
    run_id = str(uuid.uuid4())
    start_run((store or get_store()).conn, run_id, "import", source)
    background.add_task(run_pipeline, run_id, "import", source, store)
    return run_id

def trigger_price_sync(background, source: str | None = None, store: PortfolioStore | None = None) -> str:
    run_id = str(uuid.uuid4())
    start_run((store or get_store()).conn, run_id, "price_sync", source)
    background.add_task(run_pipeline, run_id, "price_sync", source, store)
    return run_id

async def run_pipeline(
    run_id: str,
    kind: str,
    source: str | None,
    store: PortfolioStore | None = None,
    fetcher: ResilientFetcher | None = None,
):
    store = store or get_store()
    conn = store.conn
    start_run(conn, run_id, kind, source)
    started = time.monotonic()
    log.info("run_started", run_id=run_id, kind=kind)
    try:
        with held_lock(conn, WRITE_LOCK, run_id):
            if kind == "import":
                result = await import_portfolio_from_sheet(store, source, fetcher)
                summary = {
                    "clients": len(result.clients),
                    "positions": len(result.positions),
                    "skipped_rows": result.skipped_rows,
                }
            elif kind == "price_sync":
                prices = await sync_prices_from_sheet(store, source, fetcher)
                summary = {"prices": len(prices)}
            else:
                raise ValueError(f"unknown run kind {kind}")
        finish_run_ok(conn, run_id, summary)
        log.info("run_finished", run_id=run_id, kind=kind, elapsed_sec=round(time.monotonic() - started, 2), **summary)
    except (FcnError, ValueError) as e:
        log.error("run_failed", run_id=run_id, kind=kind, err=str(e))
        finish_run_fail(conn, run_id, str(e))
    except Exception as e:
        log.error("run_failed", run_id=run_id, kind=kind, err=str(e))
        finish_run_fail(conn, run_id, str(e))
        raise

def get_status(run_id: str, store: PortfolioStore | None = None):
    store = store or get_store()
    return get_run_status(store.conn, run_id)
