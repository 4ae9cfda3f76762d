from pathlib import Path
import asyncio
import os
import sys
import uuid

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from fcn_tracker.logging import setup_logging
from fcn_tracker.pipeline.orchestrator import get_status, get_store, run_pipeline


def main(kind: str, source: str | None):
    setup_logging(console=True)
    run_id = str(uuid.uuid4())
    print('Run', run_id)
    asyncio.run(run_pipeline(run_id, kind, source, get_store()))
    print(get_status(run_id))


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in ("import", "prices"):
        print("Usage: python scripts/import_sheet.py <import|prices> [sheet id or URL]")
        raise SystemExit(2)
    kind = "import" if sys.argv[1] == "import" else "price_sync"
    source = sys.argv[2] if len(sys.argv) > 2 else None
    if kind == "import" and not source:
        print("import needs a sheet id or URL")
        raise SystemExit(2)
    main(kind, source)
