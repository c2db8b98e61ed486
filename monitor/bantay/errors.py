from typing import Any, Optional


class BantayError(Exception):
    """Base class for monitor errors."""


class RateLimitExceeded(BantayError):
    """A client used up its quota. Surfaced as HTTP 429, never logged as an error."""

    def __init__(self, rule_name: str, identifier: str, rule: Any, result: Any):
        self.rule_name = rule_name
        self.identifier = identifier
        self.rule = rule
        self.result = result
        super().__init__(
            f"Rate limit '{rule_name}' exceeded for {identifier}, "
            f"retry after {result.retry_after}s"
        )


class PersistenceFailure(BantayError):
    """The audit sink could not accept or answer a request."""


class MitigationFailure(BantayError):
    """A threat pattern's mitigation hook raised."""

    def __init__(self, pattern: str, cause: Optional[BaseException] = None):
        self.pattern = pattern
        self.cause = cause
        super().__init__(f"Mitigation for {pattern} failed: {cause}")


class ConfigurationError(BantayError, ValueError):
    """Missing or invalid configuration. Raised at startup, not per request."""
