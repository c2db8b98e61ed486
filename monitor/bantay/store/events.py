import threading
from collections import deque
from typing import Deque, Dict, List, Tuple

from .models import SecurityEvent
from ..config.defaults import CACHE_TTL_MS, MAX_EVENTS_PER_KEY

class EventStore:
    """
    Bounded per-key security event log.

    Each key keeps at most ``max_events_per_key`` events, oldest evicted first.
    ``cleanup`` drops events older than ``ttl_ms`` and forgets keys whose log
    becomes empty. All access goes through one lock, so it is safe to call
    from request handlers and from a background maintenance task at once.
    """

    def __init__(self, max_events_per_key: int = MAX_EVENTS_PER_KEY, ttl_ms: int = CACHE_TTL_MS):
        self.max_events_per_key = max_events_per_key
        self.ttl_ms = ttl_ms
        self._logs: Dict[str, Deque[SecurityEvent]] = {}
        self._lock = threading.Lock()

    def append(self, key: str, event: SecurityEvent):
        with self._lock:
            log = self._logs.get(key)
            if log is None:
                log = deque()
                self._logs[key] = log
            log.append(event)
            while len(log) > self.max_events_per_key:
                log.popleft()

    def get(self, key: str) -> Tuple[SecurityEvent, ...]:
        with self._lock:
            return tuple(self._logs.get(key, ()))

    def cleanup(self, now: int) -> int:
        """Purge expired events. Returns the number of events removed."""
        removed = 0
        with self._lock:
            for key in list(self._logs):
                log = self._logs[key]
                fresh = [e for e in log if now - e.timestamp < self.ttl_ms]
                removed += len(log) - len(fresh)
                if fresh:
                    if len(fresh) != len(log):
                        self._logs[key] = deque(fresh)
                else:
                    del self._logs[key]
        return removed

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._logs)

    def clear(self):
        with self._lock:
            self._logs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)
