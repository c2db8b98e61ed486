import asyncio
import time
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional

from .config.loader import load_config
from .config.schema import BantayConfig
from .facade import SecurityFacade
from .ipc import IPCServer
from .store.database import AuditStore
from .store.sink import AuditSink, NullAuditSink
from .utils.logging import setup_logging, get_logger

logger = get_logger("service")

VERSION = "0.1.0"

class BantayService:
    """
    Owns the monitor for the lifetime of the host process: audit store,
    security facade, admin socket and, in interval mode, the background
    cleanup task.
    """

    def __init__(self, config_path: str = None, config: Optional[BantayConfig] = None,
                 configure_logging: bool = True):
        self.config = config or load_config(Path(config_path) if config_path else None)
        if configure_logging:
            setup_logging(self.config.agent.log_level)

        self.store: AuditSink
        if self.config.audit.enabled:
            self.store = AuditStore(self.config.database.path)
        else:
            self.store = NullAuditSink()
        self.facade = SecurityFacade.from_config(self.config, sink=self.store)

        self.ipc_handlers = {
            "status": self.handle_status,
            "insights": self.handle_insights,
            "threat_level": self.handle_threat_level,
            "ratelimit_status": self.handle_ratelimit_status,
            "ratelimit_reset": self.handle_ratelimit_reset,
            "threats": self.handle_threats,
            "statistics": self.handle_statistics,
        }
        self.ipc = IPCServer(self.config.agent.ipc_socket, self.ipc_handlers)

        self._cleanup_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None

    async def start(self, serve_admin: bool = True):
        logger.info(f"Starting Bantay v{VERSION}")
        if isinstance(self.store, AuditStore):
            logger.info(f"Audit database: {self.config.database.path}")
            await self.store.initialize()
        else:
            logger.warning("Audit trail disabled, threat events will only be logged")

        if serve_admin:
            await self.ipc.start()

        if self.config.monitor.cleanup_mode == "interval":
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self._started_at = time.monotonic()

    async def shutdown(self):
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.ipc.stop()
        if isinstance(self.store, AuditStore):
            await self.store.close()
        logger.info("Bantay stopped.")

    async def _cleanup_loop(self):
        interval = self.config.monitor.cleanup_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                self.facade.maintenance()
            except Exception as e:
                logger.error(f"Background cleanup failed: {e}")

    async def handle_status(self, params) -> Dict:
        uptime = time.monotonic() - self._started_at if self._started_at else 0.0
        return {
            "status": "running",
            "version": VERSION,
            "uptime": round(uptime, 1),
            "audit_enabled": self.config.audit.enabled,
            "cleanup_mode": self.config.monitor.cleanup_mode,
            "monitored_keys": len(self.facade.events),
            "rate_limit_entries": len(self.facade.limiter),
            "rules": {
                name: {"max_requests": r.max_requests, "window_ms": r.window_ms}
                for name, r in self.facade.rules.items()
            },
            "detections": dict(self.facade.detector.detections),
        }

    async def handle_insights(self, params) -> Dict:
        return asdict(self.facade.insights())

    async def handle_threat_level(self, params) -> Dict:
        key = params["key"]
        return {
            "key": key,
            "level": self.facade.threat_level(key).value,
            "blocked": self.facade.should_block(key),
        }

    async def handle_ratelimit_status(self, params) -> Optional[Dict]:
        self.facade.rule(params["rule"])
        entry = self.facade.status(params["identifier"], params["rule"])
        return asdict(entry) if entry else None

    async def handle_ratelimit_reset(self, params) -> Dict:
        self.facade.rule(params["rule"])
        return {"reset": self.facade.reset(params["identifier"], params["rule"])}

    async def handle_threats(self, params):
        limit = int(params.get("limit", 10))
        threats = await self.store.get_threats(limit)
        return [
            {
                "id": t.id,
                "timestamp": t.timestamp,
                "event_type": t.event_type,
                "severity": t.severity,
                "source_ip": t.source_ip,
                "user_id": t.user_id,
                "mitigated": t.mitigated,
            }
            for t in threats
        ]

    async def handle_statistics(self, params) -> Dict:
        stats = await self.store.get_statistics(params.get("timeframe", "24h"))
        return asdict(stats)
