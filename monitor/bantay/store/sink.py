from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from .models import SecurityAuditLog, SecurityStatistics, ThreatDetectionEvent

TIMEFRAMES = {
    "24h": 24 * 60 * 60 * 1000,
    "7d": 7 * 24 * 60 * 60 * 1000,
    "30d": 30 * 24 * 60 * 60 * 1000,
}

@dataclass
class AuditQuery:
    user_id: Optional[str] = None
    operation: Optional[str] = None
    severity: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    limit: Optional[int] = None

class AuditSink(ABC):
    """
    Persistence collaborator for audit and threat records.

    Implementations may raise; the monitor catches and logs every failure
    so a broken sink only costs the audit trail.
    """

    @abstractmethod
    async def store_audit_log(self, entry: SecurityAuditLog):
        pass

    @abstractmethod
    async def store_threat_event(self, entry: ThreatDetectionEvent):
        pass

    @abstractmethod
    async def query_audit_logs(self, filters: AuditQuery) -> List[SecurityAuditLog]:
        pass

    @abstractmethod
    async def get_statistics(self, timeframe: str = "24h") -> SecurityStatistics:
        pass

    async def get_threats(self, limit: int = 50) -> List[ThreatDetectionEvent]:
        return []

class NullAuditSink(AuditSink):
    """Sink used when auditing is disabled: accepts and forgets everything."""

    async def store_audit_log(self, entry: SecurityAuditLog):
        pass

    async def store_threat_event(self, entry: ThreatDetectionEvent):
        pass

    async def query_audit_logs(self, filters: AuditQuery) -> List[SecurityAuditLog]:
        return []

    async def get_statistics(self, timeframe: str = "24h") -> SecurityStatistics:
        return SecurityStatistics()
