import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from fcn_tracker.config import settings
from fcn_tracker.db import get_conn
from fcn_tracker.errors import FetchExhaustedError
from fcn_tracker.main import app
from fcn_tracker.pipeline.locking import acquire_lock
from fcn_tracker.pipeline.orchestrator import WRITE_LOCK, get_store
from fcn_tracker.store import PortfolioStore

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123"
PORTFOLIO_CSV = (
    "客戶,產品名稱,幣別,本金,年息(%),KI(%),連結標的\n"
    "王小明,FCN A,USD,120000,10,70,NVDA:100/AMD:100\n"
)


class FakeFetcher:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    async def fetch_text(self, url):
        if self.error:
            raise self.error
        return self.text


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.store = PortfolioStore(get_conn(":memory:"), default_client_name="預設")
        app.dependency_overrides[get_store] = lambda: self.store
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def _import(self):
        resp = self.client.post("/import/text", json={"text": PORTFOLIO_CSV})
        self.assertEqual(resp.status_code, 200)
        return resp.json()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["clients"], 1)
        self.assertEqual(resp.json()["last_updated"], "尚無紀錄")

    def test_secret_required_when_configured(self):
        with patch.object(settings, "app_secret", "s3cret"):
            self.assertEqual(self.client.get("/health").status_code, 401)
            self.assertEqual(self.client.get("/health", headers={"X-App-Secret": "nope"}).status_code, 401)
            self.assertEqual(self.client.get("/health", headers={"X-App-Secret": "s3cret"}).status_code, 200)

    def test_client_and_position_crud(self):
        resp = self.client.post("/clients", json={"name": "陳大文"})
        self.assertEqual(resp.status_code, 201)
        client_id = resp.json()["id"]

        resp = self.client.post(
            f"/clients/{client_id}/positions",
            json={"productName": "FCN X", "underlyings": [{"ticker": "aapl", "entryPrice": 175}]},
        )
        self.assertEqual(resp.status_code, 201)
        pos = resp.json()
        self.assertEqual(pos["clientId"], client_id)
        self.assertEqual(pos["kiLevel"], 70)
        self.assertEqual(pos["underlyings"], [{"ticker": "AAPL", "entryPrice": 175}])

        resp = self.client.patch(f"/positions/{pos['id']}", json={"fields": {"kiLevel": 55}})
        self.assertEqual(resp.json()["kiLevel"], 55)
        resp = self.client.patch(f"/positions/{pos['id']}", json={"fields": {"underlyings": []}})
        self.assertEqual(resp.status_code, 400)

        views = self.client.get(f"/clients/{client_id}/positions").json()
        self.assertEqual(views[0]["riskStatus"], "Normal")
        self.assertEqual(views[0]["monthlyCoupon"], 83)

        self.assertEqual(self.client.delete(f"/positions/{pos['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/positions/{pos['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/clients/{client_id}").status_code, 200)
        self.assertEqual(self.client.delete("/clients/c1").status_code, 400)
        self.assertEqual(self.client.get("/clients/nope/positions").status_code, 404)

    def test_position_needs_underlying(self):
        resp = self.client.post("/clients/c1/positions", json={"productName": "X", "underlyings": []})
        self.assertEqual(resp.status_code, 422)

    def test_import_text_and_summary(self):
        body = self._import()
        self.assertEqual((body["clients"], body["positions"], body["skipped_rows"]), (1, 1, 0))
        self.client.post("/prices/paste", json={"text": "NVDA 110\nAMD 68"})
        summary = self.client.get("/summary").json()
        self.assertEqual(summary["by_currency"], {"USD": {"nominal": 120000.0, "monthly": 1000}})
        self.assertEqual(summary["ki_count"], 1)
        prices = self.client.get("/prices").json()
        self.assertEqual(prices["prices"], {"NVDA": 110, "AMD": 68})
        self.assertEqual(prices["active_tickers"], ["AMD", "NVDA"])

    def test_import_text_errors(self):
        self.assertEqual(self.client.post("/import/text", json={"text": "a,b,c\n1,2,3"}).status_code, 400)
        acquire_lock(self.store.conn, WRITE_LOCK, "other")
        self.assertEqual(self.client.post("/import/text", json={"text": PORTFOLIO_CSV}).status_code, 409)

    def test_manual_prices(self):
        resp = self.client.post("/prices", json={"prices": {"TSM": 150.5}})
        self.assertEqual(resp.json()["updated"], 1)
        self.assertTrue(self.store.last_updated.endswith("(manual)"))

    def test_sheet_import_runs_in_background(self):
        with patch("fcn_tracker.pipeline.orchestrator.ResilientFetcher", return_value=FakeFetcher(text=PORTFOLIO_CSV)):
            resp = self.client.post("/import/sheet", json={"source": SHEET_ID})
        self.assertEqual(resp.status_code, 202)
        status = self.client.get(f"/status/{resp.json()['run_id']}").json()
        self.assertEqual(status["status"], "succeeded")
        self.assertEqual(status["result"]["positions"], 1)
        self.assertEqual(self.store.sheet_id, SHEET_ID)

        with patch("fcn_tracker.pipeline.orchestrator.ResilientFetcher", return_value=FakeFetcher(text="NVDA,120\nAMD,90\n")):
            resp = self.client.post("/prices/sync", json={})
        status = self.client.get(f"/status/{resp.json()['run_id']}").json()
        self.assertEqual(status["kind"], "price_sync")
        self.assertEqual(self.store.prices["AMD"], 90)

    def test_sheet_import_failure_is_recorded(self):
        error = FetchExhaustedError("Could not download the sheet")
        with patch("fcn_tracker.pipeline.orchestrator.ResilientFetcher", return_value=FakeFetcher(error=error)):
            resp = self.client.post("/import/sheet", json={"source": SHEET_ID})
        status = self.client.get(f"/status/{resp.json()['run_id']}").json()
        self.assertEqual(status["status"], "failed")
        self.assertEqual(status["error_message"], "Could not download the sheet")

    def test_sync_and_import_need_a_source(self):
        self.assertEqual(self.client.post("/prices/sync", json={}).status_code, 400)
        self.assertEqual(self.client.post("/import/sheet", json={}).status_code, 400)
        self.assertEqual(self.client.get("/status/missing").status_code, 404)

    def test_exports(self):
        self._import()
        client_id = self.store.clients[0].id
        resp = self.client.get("/export/csv")
        self.assertTrue(resp.content.startswith(b"\xef\xbb\xbf"))
        self.assertIn("attachment", resp.headers["content-disposition"])
        self.assertIn("王小明", resp.content.decode("utf-8"))
        resp = self.client.get(f"/export/json/{client_id}")
        self.assertEqual(resp.json()["n"], "王小明")

    def test_share_roundtrip(self):
        self._import()
        self.store.update_prices({"NVDA": 104, "AMD": 73, "AAPL": 1})
        client_id = self.store.clients[0].id
        resp = self.client.get(f"/share/{client_id}")
        fragment = resp.json()["fragment"]
        self.assertTrue(fragment.startswith("#share="))
        self.assertIsNone(resp.json()["url"])

        view = self.client.post("/share/decode", json={"share": fragment}).json()
        self.assertEqual(view["client_name"], "王小明")
        self.assertEqual(view["prices"], {"NVDA": 104, "AMD": 73})
        self.assertEqual(view["positions"][0]["riskStatus"], "Near KI")
        self.assertEqual(view["positions"][0]["position"]["clientId"], "guest")
        self.assertEqual(self.client.post("/share/decode", json={"share": "#share=@@"}).status_code, 400)

    def test_share_url_uses_base(self):
        with patch.object(settings, "share_base_url", "https://fcn.example/"):
            resp = self.client.get("/share/c1")
        self.assertTrue(resp.json()["url"].startswith("https://fcn.example/#share="))


if __name__ == "__main__":
    unittest.main()
