import time
from datetime import datetime, timezone
from typing import Callable

# Every timestamp inside the monitor is epoch milliseconds.
Clock = Callable[[], int]

def now_ms() -> int:
    return int(time.time() * 1000)

def iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()

def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()

def iso_z(ms: int) -> str:
    """Millisecond precision UTC timestamp ending in ``Z``, as browsers format them."""
    stamp = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
