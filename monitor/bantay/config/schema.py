from typing import Dict, Literal
from pydantic import BaseModel, Field, field_validator

from .defaults import (
    CACHE_TTL_MS,
    CLEANUP_INTERVAL_MS,
    DEFAULT_DB_PATH,
    DEFAULT_RATE_LIMITS,
    DEFAULT_SOCKET_PATH,
    MAX_EVENTS_PER_KEY,
    MAX_SCAN_LENGTH,
)

class AgentConfig(BaseModel):
    name: str = "bantay"
    log_level: str = "INFO"
    ipc_socket: str = str(DEFAULT_SOCKET_PATH)

class DatabaseConfig(BaseModel):
    path: str = str(DEFAULT_DB_PATH)

class AuditConfig(BaseModel):
    enabled: bool = True

class RateLimitRuleConfig(BaseModel):
    max_requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)
    skip_successful: bool = False
    skip_failed: bool = False

def _default_rules() -> Dict[str, RateLimitRuleConfig]:
    return {name: RateLimitRuleConfig(**rule) for name, rule in DEFAULT_RATE_LIMITS.items()}

class MonitorConfig(BaseModel):
    max_events_per_key: int = Field(default=MAX_EVENTS_PER_KEY, gt=0)
    cache_ttl_ms: int = Field(default=CACHE_TTL_MS, gt=0)
    cleanup_mode: Literal["inline", "interval"] = "inline"
    cleanup_interval_ms: int = Field(default=CLEANUP_INTERVAL_MS, gt=0)

    @field_validator("cleanup_interval_ms")
    @classmethod
    def interval_within_ttl(cls, value: int, info) -> int:
        ttl = info.data.get("cache_ttl_ms", CACHE_TTL_MS)
        if value > ttl:
            raise ValueError("cleanup_interval_ms must not exceed cache_ttl_ms")
        return value

class DetectionConfig(BaseModel):
    enabled: bool = True
    max_scan_length: int = Field(default=MAX_SCAN_LENGTH, gt=0)

class BantayConfig(BaseModel):
    agent: AgentConfig = Field(default_factory=AgentConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    rate_limits: Dict[str, RateLimitRuleConfig] = Field(default_factory=_default_rules)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)

    @field_validator("rate_limits")
    @classmethod
    def merge_default_rules(cls, value: Dict[str, RateLimitRuleConfig]) -> Dict[str, RateLimitRuleConfig]:
        # A config file overrides individual rules, it never drops the built-in ones.
        merged = _default_rules()
        merged.update(value)
        return merged
