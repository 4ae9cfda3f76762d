from pathlib import Path
import json
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from fcn_tracker.errors import FcnError
from fcn_tracker.pipeline.orchestrator import get_store
from fcn_tracker.share.links import build_share_payload, decode_share, share_fragment


def main(args: list[str]):
    if args[0] == "encode":
        store = get_store()
        client_id = args[1] if len(args) > 1 else store.clients[0].id
        print(share_fragment(build_share_payload(store, client_id)))
        return 0
    try:
        payload = decode_share(args[1])
    except FcnError as e:
        print(e)
        return 1
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in ("encode", "decode") or (sys.argv[1] == "decode" and len(sys.argv) < 3):
        print("Usage: python scripts/share_link.py encode [client_id] | decode <#share=...>")
        raise SystemExit(2)
    raise SystemExit(main(sys.argv[1:]))
