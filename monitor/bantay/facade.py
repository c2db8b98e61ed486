from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse

from .config.schema import BantayConfig
from .detector.pipeline import ThreatDetector
from .detector.rules.catalog import build_catalog
from .errors import ConfigurationError, RateLimitExceeded
from .identity import identify
from .ratelimit.limiter import RateLimiter
from .ratelimit.models import RateLimitEntry, RateLimitResult, RateLimitRule, build_rules
from .store.events import EventStore
from .store.models import SecurityContext, SecurityInsights, Severity, ThreatDetectionEvent
from .store.sink import AuditSink, NullAuditSink
from .utils.clock import Clock, iso_z, now_ms
from .utils.logging import get_logger

logger = get_logger("facade")

RATE_LIMIT_ERROR_CODE = "RATE_LIMIT_EXCEEDED"

RateLimitHandler = Callable[..., Awaitable[Optional[JSONResponse]]]

def _window_seconds(rule: RateLimitRule):
    seconds = rule.window_ms / 1000
    return int(seconds) if seconds.is_integer() else seconds

def _request_path(request: Any) -> str:
    url = getattr(request, "url", None)
    return getattr(url, "path", "/") if url is not None else "/"

def rate_limit_response(exc: RateLimitExceeded, path: str, now: int) -> JSONResponse:
    """The 429 response sent to a client that ran out of quota."""
    result: RateLimitResult = exc.result
    rule: RateLimitRule = exc.rule
    body = {
        "error": {
            "code": RATE_LIMIT_ERROR_CODE,
            "message": f"Rate limit exceeded. Try again in {result.retry_after} seconds.",
            "details": {
                "retryAfter": result.retry_after,
                "limit": rule.max_requests,
                "window": _window_seconds(rule),
            },
        },
        "timestamp": iso_z(now),
        "path": path,
    }
    headers = {
        "Retry-After": str(result.retry_after if result.retry_after is not None else 60),
        "X-RateLimit-Limit": str(rule.max_requests),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time),
    }
    return JSONResponse(body, status_code=429, headers=headers)

async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Starlette exception handler for RateLimitExceeded raised by route code."""
    return rate_limit_response(exc, request.url.path, now_ms())

@dataclass
class RateLimitTicket:
    """Outcome of a guarded request, with callbacks to refund it later."""
    identifier: str
    rule_name: str
    result: RateLimitResult
    _on_success: Callable[[], None] = field(repr=False, default=lambda: None)
    _on_failure: Callable[[], None] = field(repr=False, default=lambda: None)

    @property
    def allowed(self) -> bool:
        return self.result.allowed

    def record_success(self):
        self._on_success()

    def record_failure(self):
        self._on_failure()

class SecurityFacade:
    """
    Entry point for API handlers: rate limiting, security event recording
    and the operator queries. Built once per process and passed to handlers.
    """

    def __init__(
        self,
        rules: Mapping[str, RateLimitRule],
        limiter: RateLimiter,
        detector: ThreatDetector,
        clock: Clock = now_ms,
    ):
        self.rules: Dict[str, RateLimitRule] = dict(rules)
        self.limiter = limiter
        self.detector = detector
        self.clock = clock

    @classmethod
    def from_config(cls, config: BantayConfig, sink: Optional[AuditSink] = None,
                    clock: Clock = now_ms) -> "SecurityFacade":
        events = EventStore(
            max_events_per_key=config.monitor.max_events_per_key,
            ttl_ms=config.monitor.cache_ttl_ms,
        )
        detector = ThreatDetector(
            events,
            sink=sink or NullAuditSink(),
            patterns=build_catalog(config.detection.max_scan_length),
            clock=clock,
            inline_cleanup=config.monitor.cleanup_mode == "inline",
            enabled=config.detection.enabled,
        )
        return cls(build_rules(config.rate_limits), RateLimiter(clock=clock), detector, clock=clock)

    @property
    def events(self) -> EventStore:
        return self.detector.events

    @property
    def sink(self) -> AuditSink:
        return self.detector.sink

    def rule(self, rule_name: str) -> RateLimitRule:
        try:
            return self.rules[rule_name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown rate limit rule {rule_name!r}, expected one of {sorted(self.rules)}"
            ) from None

    # Rate limiting

    def check(self, identifier: str, rule_name: str) -> RateLimitResult:
        return self.limiter.check(identifier, self.rule(rule_name), rule_name)

    def require(self, identifier: str, rule_name: str) -> RateLimitResult:
        """Like ``check`` but raises RateLimitExceeded when the request is rejected."""
        rule = self.rule(rule_name)
        result = self.limiter.check(identifier, rule, rule_name)
        if not result.allowed:
            raise RateLimitExceeded(rule_name, identifier, rule, result)
        return result

    def rate_limit_handler(self, rule_name: str) -> RateLimitHandler:
        """
        Build a per-rule handler. Calling it with a request returns a 429
        response when the client is over quota, or None to let the request
        through. The caller reports the outcome with record_success or
        record_failure afterwards.
        """
        rule = self.rule(rule_name)

        async def handler(request: Any, user_id: Optional[str] = None) -> Optional[JSONResponse]:
            identifier = identify(request, user_id)
            result = self.limiter.check(identifier, rule, rule_name)
            if result.allowed:
                return None
            logger.warning(
                f"Rate limit exceeded: rule={rule_name} identifier={identifier} "
                f"retry_after={result.retry_after}"
            )
            exc = RateLimitExceeded(rule_name, identifier, rule, result)
            return rate_limit_response(exc, _request_path(request), self.clock())

        return handler

    def rate_limit_guard(self, rule_name: str) -> Callable[..., RateLimitTicket]:
        """Per-rule guard for callers that already know the client identifier."""
        rule = self.rule(rule_name)

        def guard(identifier: str,
                  on_success: Optional[Callable[[], None]] = None,
                  on_failure: Optional[Callable[[], None]] = None) -> RateLimitTicket:
            result = self.limiter.check(identifier, rule, rule_name)
            if not result.allowed:
                logger.warning(
                    f"Rate limit exceeded: rule={rule_name} identifier={identifier} "
                    f"remaining={result.remaining} retry_after={result.retry_after}"
                )
                return RateLimitTicket(identifier, rule_name, result)

            def succeeded():
                self.limiter.record_success(identifier, rule, rule_name)
                if on_success:
                    on_success()

            def failed():
                self.limiter.record_failure(identifier, rule, rule_name)
                if on_failure:
                    on_failure()

            return RateLimitTicket(identifier, rule_name, result, succeeded, failed)

        return guard

    def record_success(self, request: Any, rule_name: str, user_id: Optional[str] = None):
        self.limiter.record_success(identify(request, user_id), self.rule(rule_name), rule_name)

    def record_failure(self, request: Any, rule_name: str, user_id: Optional[str] = None):
        self.limiter.record_failure(identify(request, user_id), self.rule(rule_name), rule_name)

    # Threat detection

    async def record_security_event(
        self,
        event_type: str,
        context: SecurityContext,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ThreatDetectionEvent]:
        return await self.detector.record_security_event(event_type, context, metadata)

    def threat_level(self, key: str) -> Severity:
        return self.detector.threat_level(key)

    def should_block(self, key: str) -> bool:
        return self.detector.should_block(key)

    # Administration

    def reset(self, identifier: str, rule_name: str) -> bool:
        return self.limiter.reset(identifier, rule_name)

    def status(self, identifier: str, rule_name: str) -> Optional[RateLimitEntry]:
        return self.limiter.status(identifier, rule_name)

    def insights(self) -> SecurityInsights:
        return self.detector.insights()

    def maintenance(self, now: Optional[int] = None) -> Dict[str, int]:
        """Purge expired events and finished rate-limit windows."""
        now = self.clock() if now is None else now
        purged = self.events.cleanup(now)
        swept = self.limiter.sweep(now)
        if purged or swept:
            logger.debug(f"Maintenance purged {purged} events and {swept} rate limit entries")
        return {"events_purged": purged, "entries_swept": swept}
