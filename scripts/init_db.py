from pathlib import Path
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from fcn_tracker.config import settings
from fcn_tracker.store import PortfolioStore

DEMO_POSITION = {
    "productName": "FCN Tech Giants",
    "issuer": "GS",
    "nominal": 100000,
    "currency": "USD",
    "couponRate": 12.5,
    "strikeDate": "2024-01-15",
    "koObservationStartDate": "2024-04-15",
    "tenor": "6 個月",
    "maturityDate": "2024-07-15",
    "koLevel": 105,
    "kiLevel": 70,
    "strikeLevel": 100,
    "underlyings": [
        {"ticker": "NVDA", "entryPrice": 550},
        {"ticker": "AMD", "entryPrice": 140},
    ],
}
DEMO_PRICES = {"NVDA": 610.50, "AMD": 135.20, "TSLA": 190.00, "AAPL": 175.00, "7203": 3550}

if __name__ == '__main__':
    store = PortfolioStore.open(settings.db_path)
    if "--demo" in sys.argv[1:] and not store.positions:
        store.update_prices(DEMO_PRICES, source="demo")
        store.add_position(store.clients[0].id, DEMO_POSITION)
    store.save()
    print('DB ready at', settings.db_path, '| clients:', len(store.clients), '| positions:', len(store.positions))
