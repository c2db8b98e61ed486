from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from ..errors import ConfigurationError

@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_ms: int
    skip_successful: bool = False
    skip_failed: bool = False

    def __post_init__(self):
        if self.max_requests <= 0:
            raise ConfigurationError(f"max_requests must be positive, got {self.max_requests}")
        if self.window_ms <= 0:
            raise ConfigurationError(f"window_ms must be positive, got {self.window_ms}")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

@dataclass
class RateLimitEntry:
    count: int
    reset_time: int
    blocked: bool = False

@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int
    retry_after: Optional[int] = None

def build_rules(config_rules: Mapping) -> Dict[str, RateLimitRule]:
    """Turn the validated ``rate_limits`` config section into rule objects."""
    rules = {}
    for name, rule in config_rules.items():
        data = rule.model_dump() if hasattr(rule, "model_dump") else dict(rule)
        rules[name] = RateLimitRule(**data)
    return rules
