import traceback
from enum import Enum
from typing import Any, Dict, Optional

from .store.models import SecurityAuditLog, Severity, ThreatDetectionEvent
from .store.sink import AuditSink
from .utils.logging import get_logger

logger = get_logger("audit")

STACK_TRACE_LIMIT = 1000

class AuditEventType(str, Enum):
    SQL_INJECTION_ATTEMPT = "sql_injection_attempt"
    XSS_ATTEMPT = "xss_attempt"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    MALICIOUS_FILE_UPLOAD = "malicious_file_upload"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

def _get(context: Any, name: str) -> Optional[Any]:
    if context is None:
        return None
    if isinstance(context, dict):
        return context.get(name)
    return getattr(context, name, None)

def _as_dict(context: Any) -> Dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, dict):
        return dict(context)
    if hasattr(context, "to_dict"):
        return context.to_dict()
    return dict(vars(context))

async def audit_error(sink: AuditSink, error: BaseException, context: Any, error_code: str) -> bool:
    """Record an application error in the audit trail. Returns False if the sink refused it."""
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    entry = SecurityAuditLog(
        operation="error_occurrence",
        user_id=_get(context, "user_id") or "anonymous",
        resource_type=_get(context, "resource_type"),
        resource_id=_get(context, "resource_id"),
        severity=Severity.MEDIUM.value,
        details={
            "error_code": error_code,
            "error_message": str(error),
            "stack_trace": stack[:STACK_TRACE_LIMIT],
            "context": _as_dict(context),
        },
        ip_address=_get(context, "ip_address"),
        user_agent=_get(context, "user_agent"),
        session_id=_get(context, "session_id"),
        success=False,
        error_message=str(error),
    )
    try:
        await sink.store_audit_log(entry)
        return True
    except Exception as e:
        logger.error(f"Failed to audit error {error_code}: {e}")
        return False

async def audit_security_violation(
    sink: AuditSink,
    event_type: AuditEventType,
    context: Any,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    """Record a violation that the request path already blocked."""
    threat = ThreatDetectionEvent(
        event_type=AuditEventType(event_type).value,
        severity=Severity.HIGH.value,
        source_ip=_get(context, "ip_address") or "unknown",
        user_id=_get(context, "user_id"),
        details={**_as_dict(context), **(details or {})},
        mitigated=True,
        mitigation_action="Request blocked",
    )
    try:
        await sink.store_threat_event(threat)
        return True
    except Exception as e:
        logger.error(f"Failed to audit security violation {threat.event_type}: {e}")
        return False
