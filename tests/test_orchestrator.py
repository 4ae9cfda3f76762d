import unittest
from concurrent.futures import ThreadPoolExecutor

from fcn_tracker.db import get_conn
from fcn_tracker.errors import FetchExhaustedError, ImportParseError
from fcn_tracker.pipeline.locking import acquire_lock, held_lock, release_lock
from fcn_tracker.pipeline.orchestrator import (
    WRITE_LOCK,
    apply_price_paste,
    get_status,
    import_portfolio_text,
    run_pipeline,
    sync_prices_text,
)
from fcn_tracker.pipeline.utils import start_run
from fcn_tracker.store import PortfolioStore

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123"
PORTFOLIO_CSV = (
    "客戶,產品名稱,幣別,本金,年息(%),連結標的\n"
    "王小明,FCN A,USD,100000,12,NVDA:550/AMD:140\n"
    "陳大文,FCN B,JPY,1000000,6,7203:3000\n"
)


class FakeFetcher:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.urls = []

    async def fetch_text(self, url):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.text


def _store():
    return PortfolioStore(get_conn(":memory:"))


class ImportTextTests(unittest.TestCase):
    def test_replaces_portfolio(self):
        store = _store()
        result = import_portfolio_text(store, PORTFOLIO_CSV)
        self.assertEqual(len(result.positions), 2)
        self.assertEqual([c.name for c in store.clients], ["王小明", "陳大文"])
        self.assertEqual(store.prices, {"NVDA": 550, "AMD": 140, "7203": 3000})

    def test_failed_import_keeps_state(self):
        store = _store()
        import_portfolio_text(store, PORTFOLIO_CSV)
        before = list(store.positions)
        with self.assertRaises(ImportParseError):
            import_portfolio_text(store, "nothing,useful,here\n1,2,3\n")
        self.assertEqual(store.positions, before)


class PriceUpdateTests(unittest.TestCase):
    def test_paste_updates_and_stamps(self):
        store = _store()
        self.assertEqual(apply_price_paste(store, "NVDA 900\nAMD: 150"), 2)
        self.assertEqual(store.prices, {"NVDA": 900, "AMD": 150})
        self.assertTrue(store.last_updated.endswith("(paste)"))

    def test_empty_paste_is_a_noop(self):
        store = _store()
        self.assertEqual(apply_price_paste(store, "no prices here"), 0)
        self.assertEqual(store.prices, {})

    def test_sheet_prices(self):
        store = _store()
        prices = sync_prices_text(store, "Ticker,Price\nNVDA,901.5\n")
        self.assertEqual(prices, {"NVDA": 901.5})
        self.assertTrue(store.last_updated.endswith("(sheet)"))


class LockTests(unittest.TestCase):
    def test_single_holder(self):
        conn = _store().conn
        self.assertTrue(acquire_lock(conn, WRITE_LOCK, "a"))
        self.assertFalse(acquire_lock(conn, WRITE_LOCK, "b"))
        release_lock(conn, WRITE_LOCK, "a")
        with held_lock(conn, WRITE_LOCK, "b"):
            self.assertFalse(acquire_lock(conn, WRITE_LOCK, "c"))
        self.assertTrue(acquire_lock(conn, WRITE_LOCK, "c"))

    def test_expired_lock_is_taken_over(self):
        conn = _store().conn
        self.assertTrue(acquire_lock(conn, WRITE_LOCK, "a", ttl_seconds=-1))
        self.assertTrue(acquire_lock(conn, WRITE_LOCK, "b"))

    def test_concurrent_claims_have_one_winner(self):
        conn = _store().conn
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda i: acquire_lock(conn, WRITE_LOCK, f"owner-{i}"), range(32)))
        self.assertEqual(results.count(True), 1)

    def test_expired_lock_has_one_taker(self):
        conn = _store().conn
        acquire_lock(conn, WRITE_LOCK, "a", ttl_seconds=-1)
        self.assertTrue(acquire_lock(conn, WRITE_LOCK, "b"))
        self.assertFalse(acquire_lock(conn, WRITE_LOCK, "c"))


class RunPipelineTests(unittest.IsolatedAsyncioTestCase):
    async def test_sheet_import_run(self):
        store = _store()
        fetcher = FakeFetcher(text=PORTFOLIO_CSV)
        start_run(store.conn, "run-1", "import", SHEET_ID)
        await run_pipeline("run-1", "import", SHEET_ID, store, fetcher)
        status = get_status("run-1", store)
        self.assertEqual(status["status"], "succeeded")
        self.assertEqual(status["kind"], "import")
        self.assertEqual(status["result"], {"clients": 2, "positions": 2, "skipped_rows": 0})
        self.assertEqual(store.sheet_id, SHEET_ID)
        self.assertTrue(fetcher.urls[0].endswith(f"/{SHEET_ID}/pub?output=csv"))

    async def test_price_sync_uses_saved_sheet(self):
        store = _store()
        store.set_sheet_id(SHEET_ID)
        fetcher = FakeFetcher(text="代號,現價\nNVDA,\"1,000\"\n")
        await run_pipeline("run-2", "price_sync", None, store, fetcher)
        self.assertEqual(get_status("run-2", store)["result"], {"prices": 1})
        self.assertEqual(store.prices["NVDA"], 1000)

    async def test_fetch_failure_marks_run_failed(self):
        store = _store()
        fetcher = FakeFetcher(error=FetchExhaustedError("all routes failed"))
        await run_pipeline("run-3", "import", SHEET_ID, store, fetcher)
        status = get_status("run-3", store)
        self.assertEqual(status["status"], "failed")
        self.assertEqual(status["error_message"], "all routes failed")
        self.assertEqual(len(store.positions), 0)

    async def test_lock_held_marks_run_failed(self):
        store = _store()
        acquire_lock(store.conn, WRITE_LOCK, "someone")
        await run_pipeline("run-4", "import", SHEET_ID, store, FakeFetcher(text=PORTFOLIO_CSV))
        self.assertEqual(get_status("run-4", store)["error_message"], "lock_held")

    async def test_unexpected_errors_propagate(self):
        store = _store()
        with self.assertRaises(RuntimeError):
            await run_pipeline("run-5", "import", SHEET_ID, store, FakeFetcher(error=RuntimeError("bug")))
        self.assertEqual(get_status("run-5", store)["status"], "failed")

    def test_unknown_run(self):
        self.assertIsNone(get_status("missing", _store()))


if __name__ == "__main__":
    unittest.main()
