import os

import pytest

# Set env vars before any relaybox imports
os.environ.setdefault("POLL_TIMEOUT", "0.3")
os.environ.setdefault("FRONTEND_POLL_TIMEOUT", "0.3")
os.environ.setdefault("DISCONNECT_CHECK_INTERVAL", "0.05")
os.environ.setdefault("SWEEP_INTERVAL", "3600")
os.environ.setdefault("RATE_LIMIT_MAX", "100000")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("MAILBOX_BACKEND", "memory")

from relaybox.config import Settings
from relaybox.relay import RelayService
from relaybox.relay.mailbox import InMemoryMailboxStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """Push channel that records what it was sent."""

    def __init__(self, is_open: bool = True, fail: bool = False) -> None:
        self.is_open = is_open
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, record: dict) -> None:
        from relaybox.relay import TransportError

        if self.fail:
            raise TransportError("socket gone")
        self.sent.append(record)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def relay_settings() -> Settings:
    return Settings(
        poll_timeout=0.2,
        frontend_poll_timeout=0.2,
        data_ttl=30.0,
        frontend_data_ttl=30.0,
        mailbox_backend="memory",
        redis_url="",
    )


@pytest.fixture
def relay(relay_settings, clock) -> RelayService:
    return RelayService(relay_settings, mailbox=InMemoryMailboxStore(clock=clock))


@pytest.fixture
def sample_record() -> dict:
    return {"localip": "10.0.0.5", "temp": 42}
