import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from ...store.models import SecurityContext, SecurityEvent, Severity
from ...config.defaults import MAX_SCAN_LENGTH, MINUTE_MS
from ...utils.logging import get_logger

logger = get_logger("threat_patterns")

Detector = Callable[[SecurityContext, Sequence[SecurityEvent], int], bool]
Mitigation = Callable[[SecurityContext], Union[None, Awaitable[None]]]

@dataclass(frozen=True)
class ThreatPattern:
    name: str
    description: str
    severity: Severity
    detect: Detector
    mitigate: Optional[Mitigation] = None

def _recent(history: Sequence[SecurityEvent], now: int, window_ms: int) -> List[SecurityEvent]:
    return [e for e in history if now - e.timestamp < window_ms]

def _compile(patterns: Sequence[str]) -> List[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]

SQL_PATTERNS = _compile([
    r"union\s+select",
    r"drop\s+table",
    r"delete\s+from",
    r"update\s+.*\s+set",
    r"'.*or.*'.*=.*'",
    r"exec\s*\(",
])

XSS_PATTERNS = _compile([
    r"<script[^>]*>.*</script>",
    r"javascript:",
    r"on\w+\s*=",
    r"<iframe[^>]*>",
    r"eval\s*\(",
])

def _scan(context: SecurityContext, patterns: Sequence[re.Pattern], limit: int) -> bool:
    # Input is bounded so a pathological path cannot make matching expensive.
    path = (context.request_path or "")[:limit]
    return any(p.search(path) for p in patterns)

def brute_force(context, history, now) -> bool:
    failed = [e for e in _recent(history, now, 5 * MINUTE_MS) if e.type == "login_failed"]
    return len(failed) >= 5

async def brute_force_mitigation(context: SecurityContext):
    # TODO: lock the account or block the IP once a blocklist store exists.
    logger.warning(f"Brute force mitigation triggered for {context.ip_address or 'unknown'}")

def suspicious_navigation(context, history, now) -> bool:
    for event in _recent(history, now, MINUTE_MS):
        path = event.context.request_path or ""
        if "../" in path or "..\\" in path:
            return True
    return False

def rapid_requests(context, history, now) -> bool:
    return len(_recent(history, now, MINUTE_MS)) > 100

async def rapid_requests_mitigation(context: SecurityContext):
    logger.warning(f"Rapid request mitigation triggered for {context.ip_address or 'unknown'}")

def privilege_escalation(context, history, now) -> bool:
    attempts = [
        e for e in _recent(history, now, 10 * MINUTE_MS)
        if e.type == "access_denied" and "/admin" in (e.context.request_path or "")
    ]
    return len(attempts) >= 3

def data_exfiltration(context, history, now) -> bool:
    reads = [e for e in _recent(history, now, 5 * MINUTE_MS) if e.type == "data_access"]
    if len(reads) <= 50:
        return False
    return len({e.context.request_path for e in reads}) >= 20

def build_catalog(max_scan_length: int = MAX_SCAN_LENGTH) -> List[ThreatPattern]:
    """The fixed set of threat patterns, in evaluation order."""
    return [
        ThreatPattern(
            name="brute_force_attack",
            description="Multiple failed login attempts detected",
            severity=Severity.HIGH,
            detect=brute_force,
            mitigate=brute_force_mitigation,
        ),
        ThreatPattern(
            name="sql_injection_attempt",
            description="Potential SQL injection attack detected",
            severity=Severity.CRITICAL,
            detect=lambda context, history, now: _scan(context, SQL_PATTERNS, max_scan_length),
        ),
        ThreatPattern(
            name="xss_attempt",
            description="Cross-site scripting attempt detected",
            severity=Severity.HIGH,
            detect=lambda context, history, now: _scan(context, XSS_PATTERNS, max_scan_length),
        ),
        ThreatPattern(
            name="suspicious_navigation",
            description="Directory traversal in recent requests",
            severity=Severity.MEDIUM,
            detect=suspicious_navigation,
        ),
        ThreatPattern(
            name="rapid_requests",
            description="Unusually high request rate detected",
            severity=Severity.MEDIUM,
            detect=rapid_requests,
            mitigate=rapid_requests_mitigation,
        ),
        ThreatPattern(
            name="privilege_escalation",
            description="Potential privilege escalation attempt detected",
            severity=Severity.CRITICAL,
            detect=privilege_escalation,
        ),
        ThreatPattern(
            name="data_exfiltration",
            description="Potential data exfiltration detected",
            severity=Severity.CRITICAL,
            detect=data_exfiltration,
        ),
    ]
