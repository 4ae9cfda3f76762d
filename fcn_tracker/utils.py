import math
import time as time_module
from datetime import datetime, timezone
from dateutil import tz

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def local_stamp(local_tz: str, suffix: str | None = None) -> str:
    """Human-facing "last updated" label, e.g. ``2024-07-15 09:30 (paste)``."""
    tzinfo = tz.gettz(local_tz)
    text = datetime.now(timezone.utc).astimezone(tzinfo).strftime("%Y-%m-%d %H:%M")
    return f"{text} ({suffix})" if suffix else text

def epoch_ms() -> int:
    return int(time_module.time() * 1000)

def parse_number(val) -> float | None:
    """Lenient numeric parse: drops thousands separators, percent signs and blanks.

    Returns None for anything that is not a finite number.
    """
    if val is None:
        return None
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        num = float(val)
    else:
        text = str(val).strip().replace(",", "").replace("%", "").replace(" ", "")
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    return num
