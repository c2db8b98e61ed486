from types import SimpleNamespace

from starlette.requests import Request

from monitor.bantay.identity import context_from_request, identify, identify_context
from monitor.bantay.store.models import SecurityContext


def make_request(headers=None, path="/api/residents", query=b""):
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": query,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope)


def test_user_id_takes_precedence():
    request = make_request({"X-Forwarded-For": "1.2.3.4"})
    assert identify(request, "u1") == "user:u1"


def test_first_forwarded_address_wins():
    request = make_request({"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "X-Real-IP": "9.9.9.9"})
    assert identify(request) == "ip:1.2.3.4"


def test_header_fallback_order():
    assert identify(make_request({"X-Real-IP": "9.9.9.9", "Remote-Addr": "8.8.8.8"})) == "ip:9.9.9.9"
    assert identify(make_request({"Remote-Addr": "8.8.8.8"})) == "ip:8.8.8.8"
    assert identify(make_request()) == "ip:unknown"


def test_plain_header_mappings_are_case_insensitive():
    request = SimpleNamespace(headers={"X-Real-IP": "10.0.0.1"})
    assert identify(request) == "ip:10.0.0.1"
    assert identify({"x-forwarded-for": "10.0.0.2"}) == "ip:10.0.0.2"


def test_context_identity_matches_request_identity():
    assert identify_context(SecurityContext(user_id="u1", ip_address="1.2.3.4")) == "user:u1"
    assert identify_context(SecurityContext(ip_address="1.2.3.4")) == "ip:1.2.3.4"
    assert identify_context(SecurityContext()) == "ip:unknown"


def test_context_from_request():
    request = make_request(
        {"X-Forwarded-For": "1.2.3.4", "User-Agent": "pytest"},
        path="/api/residents",
        query=b"q=dela+cruz",
    )
    context = context_from_request(request, user_id="u1", session_id="s1")
    assert context.user_id == "u1"
    assert context.session_id == "s1"
    assert context.ip_address == "1.2.3.4"
    assert context.user_agent == "pytest"
    assert context.request_path == "/api/residents?q=dela+cruz"
    assert identify_context(context) == identify(request, "u1")
