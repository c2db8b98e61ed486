from pathlib import Path

DEFAULT_CONFIG_PATH = Path("/etc/bantay/config.yml")
DEFAULT_DB_PATH = Path("/var/lib/bantay/audit.db")
DEFAULT_SOCKET_PATH = Path("/var/run/bantay/bantay.sock")

MINUTE_MS = 60 * 1000

MAX_EVENTS_PER_KEY = 1000
CACHE_TTL_MS = 30 * MINUTE_MS
CLEANUP_INTERVAL_MS = MINUTE_MS
MAX_SCAN_LENGTH = 4096

# Rule names are part of the contract with the API handlers.
DEFAULT_RATE_LIMITS = {
    "login": {"max_requests": 5, "window_ms": 15 * MINUTE_MS},
    "api": {"max_requests": 100, "window_ms": MINUTE_MS},
    "upload": {"max_requests": 10, "window_ms": MINUTE_MS},
    "search_residents": {"max_requests": 50, "window_ms": MINUTE_MS},
    "resident_create": {"max_requests": 20, "window_ms": MINUTE_MS},
}

DEFAULT_CONFIG = {
    "agent": {
        "name": "bantay",
        "log_level": "INFO",
        "ipc_socket": str(DEFAULT_SOCKET_PATH),
    },
    "database": {
        "path": str(DEFAULT_DB_PATH),
    },
    "audit": {
        "enabled": True,
    },
    "rate_limits": DEFAULT_RATE_LIMITS,
    "monitor": {
        "max_events_per_key": MAX_EVENTS_PER_KEY,
        "cache_ttl_ms": CACHE_TTL_MS,
        "cleanup_mode": "inline",
        "cleanup_interval_ms": CLEANUP_INTERVAL_MS,
    },
    "detection": {
        "enabled": True,
        "max_scan_length": MAX_SCAN_LENGTH,
    },
}
