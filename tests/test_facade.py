import json

import pytest
from starlette.requests import Request

from monitor.bantay.errors import ConfigurationError, RateLimitExceeded
from monitor.bantay.facade import rate_limit_exceeded_handler
from monitor.bantay.utils.clock import iso_z


def make_request(headers=None, path="/api/auth/login"):
    return Request({
        "type": "http",
        "method": "POST",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    })


async def test_handler_allows_until_quota_then_returns_429(facade, clock):
    handler = facade.rate_limit_handler("login")
    request = make_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})

    for _ in range(5):
        assert await handler(request) is None

    response = await handler(request)

    assert response.status_code == 429
    assert response.headers["retry-after"] == "900"
    assert response.headers["x-ratelimit-limit"] == "5"
    assert response.headers["x-ratelimit-remaining"] == "0"
    assert response.headers["x-ratelimit-reset"] == str(clock() + 15 * 60 * 1000)
    assert response.headers["content-type"] == "application/json"

    body = json.loads(response.body)
    assert body == {
        "error": {
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Rate limit exceeded. Try again in 900 seconds.",
            "details": {"retryAfter": 900, "limit": 5, "window": 900},
        },
        "timestamp": iso_z(clock()),
        "path": "/api/auth/login",
    }


async def test_handler_keys_by_user_when_given(facade):
    handler = facade.rate_limit_handler("login")
    request = make_request({"X-Forwarded-For": "1.2.3.4"})
    for _ in range(5):
        await handler(request, "u1")
    assert (await handler(request, "u1")).status_code == 429
    assert await handler(request) is None
    assert facade.status("user:u1", "login").blocked


def test_unknown_rule_fails_fast(facade):
    with pytest.raises(ConfigurationError):
        facade.rate_limit_handler("bulk_export")
    with pytest.raises(ConfigurationError):
        facade.rate_limit_guard("bulk_export")


def test_guard_callbacks_refund(clock):
    from monitor.bantay.config.schema import BantayConfig
    from monitor.bantay.facade import SecurityFacade

    config = BantayConfig(rate_limits={"login": {"max_requests": 2, "window_ms": 60_000, "skip_successful": True}})
    facade = SecurityFacade.from_config(config, clock=clock)
    guard = facade.rate_limit_guard("login")
    calls = []

    ticket = guard("ip:a", on_success=lambda: calls.append("ok"))
    assert ticket.allowed
    ticket.record_success()
    assert calls == ["ok"]
    assert facade.status("ip:a", "login").count == 0

    guard("ip:a")
    guard("ip:a")
    rejected = guard("ip:a")
    assert not rejected.allowed
    assert rejected.result.retry_after == 60
    rejected.record_success()
    assert facade.status("ip:a", "login").count == 2


def test_record_success_and_failure_by_request(clock):
    from monitor.bantay.config.schema import BantayConfig
    from monitor.bantay.facade import SecurityFacade

    config = BantayConfig(rate_limits={"upload": {"max_requests": 10, "window_ms": 60_000, "skip_failed": True}})
    facade = SecurityFacade.from_config(config, clock=clock)
    request = make_request({"X-Real-IP": "9.9.9.9"})

    facade.check("ip:9.9.9.9", "upload")
    facade.check("ip:9.9.9.9", "upload")
    facade.record_success(request, "upload")
    assert facade.status("ip:9.9.9.9", "upload").count == 2
    facade.record_failure(request, "upload")
    assert facade.status("ip:9.9.9.9", "upload").count == 1


async def test_require_raises_and_handler_renders(facade, clock):
    for _ in range(10):
        facade.require("ip:a", "upload")
    with pytest.raises(RateLimitExceeded) as info:
        facade.require("ip:a", "upload")

    assert info.value.rule.max_requests == 10
    response = await rate_limit_exceeded_handler(make_request(path="/api/upload"), info.value)
    body = json.loads(response.body)
    assert response.status_code == 429
    assert body["error"]["details"] == {"retryAfter": 60, "limit": 10, "window": 60}
    assert body["path"] == "/api/upload"


def test_admin_reset(facade):
    facade.check("ip:a", "api")
    assert facade.reset("ip:a", "api") is True
    assert facade.status("ip:a", "api") is None


async def test_events_and_insights_through_facade(facade, sink, make_context):
    for _ in range(10):
        await facade.record_security_event("login_failed", make_context())

    assert sink.names() == ["brute_force_attack"] * 6
    assert facade.should_block("ip:203.0.113.7")
    insights = facade.insights()
    assert insights.blocked_keys == 1
    assert insights.avg_threat_level == "critical"


async def test_maintenance_purges_events_and_entries(facade, clock, make_context):
    await facade.record_security_event("page_view", make_context())
    facade.check("ip:a", "api")
    clock.advance(31 * 60 * 1000)

    assert facade.maintenance() == {"events_purged": 1, "entries_swept": 1}
    assert len(facade.events) == 0
    assert len(facade.limiter) == 0


def test_config_rules_drive_the_facade(facade):
    assert facade.rule("search_residents").max_requests == 50
    assert facade.rule("resident_create").max_requests == 20
    assert facade.rule("api").window_ms == 60_000
