import json
import aiosqlite
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .models import SecurityAuditLog, SecurityStatistics, Severity, ThreatDetectionEvent
from .sink import TIMEFRAMES, AuditQuery, AuditSink
from ..errors import PersistenceFailure
from ..utils.logging import get_logger

logger = get_logger("audit_store")

SUSPICIOUS_EVENT_TYPES = ("suspicious_activity", "brute_force", "sql_injection")

class AuditStore(AuditSink):
    """SQLite-backed audit sink."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Initialize database connection and tables."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._create_tables()

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceFailure("Audit store is not initialized")
        return self._db

    async def _create_tables(self):
        schema = """
        CREATE TABLE IF NOT EXISTS security_audit_logs (
            id TEXT PRIMARY KEY,
            operation TEXT NOT NULL,
            user_id TEXT NOT NULL,
            resource_type TEXT,
            resource_id TEXT,
            severity TEXT NOT NULL,
            details TEXT NOT NULL,
            ip_address TEXT,
            user_agent TEXT,
            session_id TEXT,
            timestamp TEXT NOT NULL,
            success INTEGER NOT NULL,
            error_message TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON security_audit_logs(timestamp DESC);
        CREATE INDEX IF NOT EXISTS idx_audit_user ON security_audit_logs(user_id);
        CREATE INDEX IF NOT EXISTS idx_audit_severity ON security_audit_logs(severity);

        CREATE TABLE IF NOT EXISTS threat_detection_events (
            id TEXT PRIMARY KEY,
            event_type TEXT NOT NULL,
            severity TEXT NOT NULL,
            source_ip TEXT NOT NULL,
            user_id TEXT,
            details TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            mitigated INTEGER NOT NULL DEFAULT 0,
            mitigation_action TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_threats_timestamp ON threat_detection_events(timestamp DESC);
        CREATE INDEX IF NOT EXISTS idx_threats_source ON threat_detection_events(source_ip);
        """
        db = self._conn()
        await db.executescript(schema)
        await db.commit()

    async def store_audit_log(self, entry: SecurityAuditLog):
        query = """
        INSERT INTO security_audit_logs (
            id, operation, user_id, resource_type, resource_id, severity,
            details, ip_address, user_agent, session_id, timestamp, success,
            error_message
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        db = self._conn()
        await db.execute(query, (
            entry.id, entry.operation, entry.user_id, entry.resource_type,
            entry.resource_id, entry.severity, json.dumps(entry.details, default=str),
            entry.ip_address, entry.user_agent, entry.session_id,
            entry.timestamp, int(entry.success), entry.error_message,
        ))
        await db.commit()
        logger.debug(f"Audit log stored: {entry.operation}")

        if entry.severity == Severity.CRITICAL.value:
            logger.error(
                f"CRITICAL SECURITY EVENT: operation={entry.operation} "
                f"user={entry.user_id} at {entry.timestamp}"
            )

    async def store_threat_event(self, entry: ThreatDetectionEvent):
        query = """
        INSERT INTO threat_detection_events (
            id, event_type, severity, source_ip, user_id, details, timestamp,
            mitigated, mitigation_action
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        db = self._conn()
        await db.execute(query, (
            entry.id, entry.event_type, entry.severity, entry.source_ip,
            entry.user_id, json.dumps(entry.details, default=str),
            entry.timestamp, int(entry.mitigated), entry.mitigation_action,
        ))
        await db.commit()
        logger.info(f"Threat event stored: {entry.event_type} ({entry.severity}) from {entry.source_ip}")

        if entry.severity in (Severity.HIGH.value, Severity.CRITICAL.value):
            logger.warning(
                f"THREAT ESCALATION: {entry.event_type} severity={entry.severity} "
                f"source_ip={entry.source_ip} user={entry.user_id}"
            )

    async def query_audit_logs(self, filters: AuditQuery) -> List[SecurityAuditLog]:
        clauses = []
        params = []
        if filters.user_id:
            clauses.append("user_id = ?")
            params.append(filters.user_id)
        if filters.operation:
            clauses.append("operation = ?")
            params.append(filters.operation)
        if filters.severity:
            clauses.append("severity = ?")
            params.append(filters.severity)
        if filters.start_date:
            clauses.append("timestamp >= ?")
            params.append(filters.start_date)
        if filters.end_date:
            clauses.append("timestamp <= ?")
            params.append(filters.end_date)

        query = "SELECT * FROM security_audit_logs"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY timestamp DESC"
        if filters.limit:
            query += " LIMIT ?"
            params.append(filters.limit)

        try:
            async with self._conn().execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except (aiosqlite.Error, PersistenceFailure) as e:
            logger.error(f"Failed to query audit logs: {e}")
            return []
        return [self._audit_from_row(row) for row in rows]

    async def get_statistics(self, timeframe: str = "24h") -> SecurityStatistics:
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe {timeframe!r}, expected one of {sorted(TIMEFRAMES)}")

        start = datetime.now(timezone.utc) - timedelta(milliseconds=TIMEFRAMES[timeframe])
        since = start.isoformat()
        try:
            db = self._conn()
            async with db.execute(
                "SELECT severity, operation, success FROM security_audit_logs WHERE timestamp >= ?",
                (since,),
            ) as cursor:
                audit_rows = await cursor.fetchall()
            async with db.execute(
                "SELECT severity, event_type FROM threat_detection_events WHERE timestamp >= ?",
                (since,),
            ) as cursor:
                threat_rows = await cursor.fetchall()
        except (aiosqlite.Error, PersistenceFailure) as e:
            logger.error(f"Failed to compute security statistics: {e}")
            return SecurityStatistics()

        return SecurityStatistics(
            total_events=len(audit_rows),
            critical_events=sum(1 for r in audit_rows if r["severity"] == Severity.CRITICAL.value),
            threat_events=len(threat_rows),
            failed_logins=sum(1 for r in audit_rows if "login" in r["operation"] and not r["success"]),
            suspicious_activities=sum(1 for r in threat_rows if r["event_type"] in SUSPICIOUS_EVENT_TYPES),
        )

    async def get_threats(self, limit: int = 50) -> List[ThreatDetectionEvent]:
        async with self._conn().execute(
            "SELECT * FROM threat_detection_events ORDER BY timestamp DESC LIMIT ?", (limit,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._threat_from_row(row) for row in rows]

    @staticmethod
    def _audit_from_row(row) -> SecurityAuditLog:
        data = dict(row)
        data["details"] = json.loads(data["details"])
        data["success"] = bool(data["success"])
        return SecurityAuditLog(**data)

    @staticmethod
    def _threat_from_row(row) -> ThreatDetectionEvent:
        data = dict(row)
        data["details"] = json.loads(data["details"])
        data["mitigated"] = bool(data["mitigated"])
        return ThreatDetectionEvent(**data)
