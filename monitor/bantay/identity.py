from typing import Any, Mapping, Optional

from .store.models import SecurityContext

# Checked in order; proxies put the original client first in X-Forwarded-For.
IP_HEADERS = ("x-forwarded-for", "x-real-ip", "remote-addr")

def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers are not.
        for k, v in headers.items():
            if k.lower() == name:
                return v
    return value

def _client_ip(headers: Mapping[str, str]) -> str:
    for name in IP_HEADERS:
        value = _header(headers, name)
        if name == "x-forwarded-for" and value:
            value = value.split(",")[0].strip()
        if value:
            return value
    return "unknown"

def identify(request: Any, user_id: Optional[str] = None) -> str:
    """Identity key for a request: the user when authenticated, else the client IP."""
    if user_id:
        return f"user:{user_id}"
    headers = getattr(request, "headers", None)
    if headers is None:
        headers = request if isinstance(request, Mapping) else {}
    return f"ip:{_client_ip(headers)}"

def identify_context(context: SecurityContext) -> str:
    """Identity key for a recorded event, matching what ``identify`` gives the request."""
    if context.user_id:
        return f"user:{context.user_id}"
    return f"ip:{context.ip_address or 'unknown'}"

def context_from_request(request: Any, user_id: Optional[str] = None,
                         session_id: Optional[str] = None) -> SecurityContext:
    """Build a SecurityContext from a Starlette-style request."""
    headers = getattr(request, "headers", {}) or {}
    url = getattr(request, "url", None)
    path = None
    if url is not None:
        path = url.path
        if getattr(url, "query", ""):
            path = f"{path}?{url.query}"
    ip = _client_ip(headers)
    return SecurityContext(
        user_id=user_id,
        session_id=session_id,
        ip_address=None if ip == "unknown" else ip,
        user_agent=_header(headers, "user-agent"),
        request_path=path,
    )
