"""Shared test fixtures and configuration for backend tests."""
import pytest
import pytest_asyncio

from nulm.chat.engine import ChatEngine, set_engine
from nulm.chat.participant import Participant
from nulm.chat_log.service import ChatLogService
from nulm.config import (
    AppSettings,
    MatchingSettings,
    ReportSettings,
    SessionSettings,
)
from nulm.reports.store import ReportStore


class FakeConnection:
    """Stands in for a WebSocket: records every payload sent to it."""

    def __init__(self, fail_sends: bool = False):
        self.sent = []
        self.closed = False
        self.fail_sends = fail_sends

    async def send_json(self, payload):
        if self.fail_sends:
            raise ConnectionError("socket is gone")
        self.sent.append(payload)

    async def close(self, code: int = 1000):
        self.closed = True

    def types(self):
        return [m["type"] for m in self.sent]

    def of_type(self, event):
        return [m for m in self.sent if m["type"] == event]


def make_participant(address: str = "10.0.0.1", entered: bool = True) -> Participant:
    participant = Participant(connection=FakeConnection(), peer_address=address)
    if entered:
        participant.enter()
    return participant


def fast_settings(**overrides) -> AppSettings:
    """Settings with millisecond-scale delays."""
    settings = AppSettings(
        session=SessionSettings(duration_seconds=60),
        matching=MatchingSettings(
            wait_notice_delay=0,
            ready_delay=0,
            warning_delay=0,
            restart_requeue_delay=0.05,
        ),
        reports=ReportSettings(
            ban_threshold=100,
            notice_delay=0.02,
            requeue_delay=0.05,
        ),
    )
    for section, values in overrides.items():
        current = getattr(settings, section)
        setattr(settings, section, current.model_copy(update=values))
    return settings


@pytest.fixture
def report_store():
    store = ReportStore(db_path=":memory:")
    yield store
    store.close()


@pytest.fixture
def chat_log():
    service = ChatLogService(db_path=":memory:")
    yield service
    service.close()


@pytest.fixture
def settings():
    return fast_settings()


@pytest_asyncio.fixture
async def engine(settings, report_store, chat_log):
    chat_engine = ChatEngine(settings, report_store, chat_log)
    yield chat_engine
    chat_engine.shutdown()


@pytest.fixture
def installed_engine(settings, report_store, chat_log):
    """Install an engine as the process-wide engine used by the routers.

    The app lifespan shuts it down when the TestClient context exits.
    """
    chat_engine = ChatEngine(settings, report_store, chat_log)
    set_engine(chat_engine)
    yield chat_engine
    chat_engine.shutdown()
    set_engine(None)
