import math
import threading
from dataclasses import replace
from typing import Dict, Optional

from .models import RateLimitEntry, RateLimitResult, RateLimitRule
from ..utils.clock import Clock, now_ms
from ..utils.logging import get_logger

logger = get_logger("rate_limiter")

class RateLimiter:
    """
    Fixed-window request counter keyed by rule name and client identifier.

    A window opens on the first request seen for a key and lasts
    ``rule.window_ms``; it is not aligned to the wall clock, so two clients
    can have staggered windows. The request that uses up the quota is still
    allowed and marks the entry blocked; the next one is rejected until the
    window rotates or a refund clears the flag.
    """

    def __init__(self, clock: Clock = now_ms):
        self.clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(identifier: str, rule_name: str) -> str:
        return f"rate_limit:{rule_name}:{identifier}"

    def check(self, identifier: str, rule: RateLimitRule, rule_name: str) -> RateLimitResult:
        key = self._key(identifier, rule_name)
        now = self.clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now >= entry.reset_time:
                entry = RateLimitEntry(count=0, reset_time=now + rule.window_ms, blocked=False)
                self._entries[key] = entry

            allowed = entry.count < rule.max_requests and not entry.blocked
            if allowed:
                entry.count += 1
            if entry.count >= rule.max_requests:
                entry.blocked = True

            remaining = max(0, rule.max_requests - entry.count)
            reset_time = entry.reset_time

        retry_after = None if allowed else math.ceil((reset_time - now) / 1000)
        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_time=reset_time,
            retry_after=retry_after,
        )

    def record_success(self, identifier: str, rule: RateLimitRule, rule_name: str):
        """Refund a request that succeeded, for rules that only bill failures."""
        if rule.skip_successful:
            self._refund(identifier, rule_name)

    def record_failure(self, identifier: str, rule: RateLimitRule, rule_name: str):
        """Refund a request that failed upstream, for rules that only bill successes."""
        if rule.skip_failed:
            self._refund(identifier, rule_name)

    def _refund(self, identifier: str, rule_name: str):
        key = self._key(identifier, rule_name)
        with self._lock:
            entry = self._entries.get(key)
            if entry and entry.count > 0:
                entry.count -= 1
                entry.blocked = False

    def reset(self, identifier: str, rule_name: str) -> bool:
        with self._lock:
            existed = self._entries.pop(self._key(identifier, rule_name), None) is not None
        if existed:
            logger.info(f"Rate limit reset: rule={rule_name} identifier={identifier}")
        return existed

    def status(self, identifier: str, rule_name: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(self._key(identifier, rule_name))
            return replace(entry) if entry else None

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop entries whose window has ended. They would be replaced on next touch anyway."""
        now = self.clock() if now is None else now
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.reset_time]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
