import pytest

from monitor.bantay.config.schema import BantayConfig
from monitor.bantay.facade import SecurityFacade
from monitor.bantay.store.models import SecurityContext, SecurityStatistics
from monitor.bantay.store.sink import AuditSink

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class RecordingSink(AuditSink):
    """Keeps everything it is given, or raises when ``fail`` is set."""

    def __init__(self):
        self.audit_logs = []
        self.threats = []
        self.fail = False

    async def store_audit_log(self, entry):
        if self.fail:
            raise RuntimeError("audit database unreachable")
        self.audit_logs.append(entry)

    async def store_threat_event(self, entry):
        if self.fail:
            raise RuntimeError("audit database unreachable")
        self.threats.append(entry)

    async def query_audit_logs(self, filters):
        return list(self.audit_logs)

    async def get_statistics(self, timeframe="24h"):
        return SecurityStatistics(total_events=len(self.audit_logs), threat_events=len(self.threats))

    async def get_threats(self, limit=50):
        return list(reversed(self.threats))[:limit]

    def names(self):
        return [t.event_type for t in self.threats]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def facade(clock, sink):
    return SecurityFacade.from_config(BantayConfig(), sink=sink, clock=clock)


@pytest.fixture
def make_context(clock):
    def _make(**kwargs):
        kwargs.setdefault("ip_address", "203.0.113.7")
        kwargs.setdefault("timestamp", clock())
        return SecurityContext(**kwargs)
    return _make
