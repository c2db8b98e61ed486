import inspect
import math
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from .rules.catalog import ThreatPattern, build_catalog
from ..config.defaults import MINUTE_MS
from ..errors import MitigationFailure
from ..identity import identify_context
from ..store.events import EventStore
from ..store.models import (
    SecurityContext,
    SecurityEvent,
    SecurityInsights,
    Severity,
    ThreatDetectionEvent,
)
from ..store.sink import AuditSink, NullAuditSink
from ..utils.clock import Clock, iso_now, now_ms
from ..utils.logging import get_logger

logger = get_logger("threat_detector")

THREAT_LEVEL_WINDOW_MS = 10 * MINUTE_MS

class ThreatDetector:
    def __init__(
        self,
        events: EventStore,
        sink: Optional[AuditSink] = None,
        patterns: Optional[Sequence[ThreatPattern]] = None,
        clock: Clock = now_ms,
        inline_cleanup: bool = True,
        enabled: bool = True,
    ):
        self.events = events
        self.sink = sink or NullAuditSink()
        self.patterns = list(patterns) if patterns is not None else build_catalog()
        self.clock = clock
        self.inline_cleanup = inline_cleanup
        self.enabled = enabled
        self.detections: Counter = Counter()

    async def record_security_event(
        self,
        event_type: str,
        context: SecurityContext,
        metadata: Optional[Dict[str, Any]] = None,
        key: Optional[str] = None,
    ) -> List[ThreatDetectionEvent]:
        """
        Record an event for the client and run every threat pattern over
        its history. Returns the threats raised by this event. Never raises.
        """
        key = key or identify_context(context)
        event = SecurityEvent(
            type=event_type,
            context=context,
            timestamp=context.timestamp,
            metadata=metadata,
        )

        try:
            self.events.append(key, event)
            if self.inline_cleanup:
                self.events.cleanup(self.clock())
        except Exception as e:
            logger.error(f"Failed to record security event {event_type} for {key}: {e}")
            return []

        logger.debug(f"Security event recorded: type={event_type} key={key}")
        if not self.enabled:
            return []

        # Patterns see a snapshot; no store lock is held while the sink is awaited.
        history = self.events.get(key)
        now = self.clock()
        triggered = []
        for pattern in self.patterns:
            try:
                if pattern.detect(context, history, now):
                    triggered.append(pattern)
            except Exception as e:
                logger.error(f"Error in threat pattern {pattern.name}: {e}")

        threats = []
        for pattern in triggered:
            threats.append(await self.handle_detection(pattern, context, key))
        return threats

    async def handle_detection(
        self, pattern: ThreatPattern, context: SecurityContext, key: str
    ) -> ThreatDetectionEvent:
        threat = ThreatDetectionEvent(
            event_type=pattern.name,
            severity=pattern.severity.value,
            source_ip=context.ip_address or "unknown",
            user_id=context.user_id,
            details={
                "description": pattern.description,
                "identity_key": key,
                "context": context.to_dict(),
                "detected_at": iso_now(),
            },
        )
        self.detections[pattern.name] += 1

        if pattern.mitigate is not None:
            try:
                await self._mitigate(pattern, context)
                threat.mitigated = True
                threat.mitigation_action = f"Applied {pattern.name} mitigation"
            except MitigationFailure as e:
                logger.error(str(e))

        try:
            await self.sink.store_threat_event(threat)
        except Exception as e:
            logger.error(f"Failed to store threat event {pattern.name} for {key}: {e}")

        logger.warning(
            f"THREAT DETECTED: {pattern.name} severity={pattern.severity.value} "
            f"key={key} mitigated={threat.mitigated}"
        )
        return threat

    async def _mitigate(self, pattern: ThreatPattern, context: SecurityContext):
        try:
            result = pattern.mitigate(context)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise MitigationFailure(pattern.name, e) from e

    def threat_level(self, key: str) -> Severity:
        now = self.clock()
        recent = [e for e in self.events.get(key) if now - e.timestamp < THREAT_LEVEL_WINDOW_MS]
        failed_logins = sum(1 for e in recent if e.type == "login_failed")
        access_denied = sum(1 for e in recent if e.type == "access_denied")
        total = len(recent)

        if failed_logins >= 10 or access_denied >= 5:
            return Severity.CRITICAL
        if failed_logins >= 5 or access_denied >= 3 or total > 200:
            return Severity.HIGH
        if failed_logins >= 2 or total > 100:
            return Severity.MEDIUM
        return Severity.LOW

    def should_block(self, key: str) -> bool:
        return self.threat_level(key) == Severity.CRITICAL

    def insights(self) -> SecurityInsights:
        keys = self.events.keys()
        levels = [self.threat_level(k) for k in keys]

        if levels:
            average = sum(level.rank for level in levels) / len(levels)
            # Half rounds up.
            avg_level = Severity.from_rank(math.floor(average + 0.5))
        else:
            avg_level = Severity.LOW

        return SecurityInsights(
            active_threats=sum(1 for level in levels if level in (Severity.HIGH, Severity.CRITICAL)),
            blocked_keys=sum(1 for level in levels if level == Severity.CRITICAL),
            monitored_keys=len(keys),
            avg_threat_level=avg_level.value,
        )
