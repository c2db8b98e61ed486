from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from ..utils.clock import iso_now, now_ms

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> "Severity":
        for level in cls:
            if level.rank >= rank:
                return level
        return cls.LOW

_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

@dataclass(frozen=True)
class SecurityContext:
    """Snapshot of who made a request, taken when the event happened."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_path: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass(frozen=True)
class SecurityEvent:
    type: str
    context: SecurityContext
    timestamp: int
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class ThreatDetectionEvent:
    event_type: str
    severity: str
    source_ip: str
    details: Dict[str, Any]
    user_id: Optional[str] = None
    mitigated: bool = False
    mitigation_action: Optional[str] = None
    id: str = field(default_factory=lambda: f"THR-{uuid.uuid4().hex[:12]}")
    timestamp: str = field(default_factory=iso_now)

@dataclass
class SecurityAuditLog:
    operation: str
    user_id: str
    severity: str
    details: Dict[str, Any]
    success: bool
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=lambda: f"AUD-{uuid.uuid4().hex[:12]}")
    timestamp: str = field(default_factory=iso_now)

@dataclass
class SecurityStatistics:
    total_events: int = 0
    critical_events: int = 0
    threat_events: int = 0
    failed_logins: int = 0
    suspicious_activities: int = 0

@dataclass
class SecurityInsights:
    active_threats: int
    blocked_keys: int
    monitored_keys: int
    avg_threat_level: str
