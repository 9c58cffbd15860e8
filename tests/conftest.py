"""
Shared pytest fixtures for the snapsight test suite.

Points the app at a throwaway SQLite file and provides fake transports,
a controllable clock and a TestClient wired to an isolated AnalysisService,
so nothing talks to Gemini, Redis or the network.
"""

import asyncio
import base64
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Must be set before snapsight.config / snapsight.database are imported
_TMP_DIR = tempfile.mkdtemp(prefix="snapsight-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'test.db'}"
os.environ["REDIS_URL"] = ""
os.environ["ANALYSIS_BACKEND"] = "gemini"

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from snapsight.database import Base, SessionLocal, engine
from snapsight.models import AnalysisRecord
from snapsight.services.admission_queue import AdmissionQueue
from snapsight.services.analysis_request import AnalysisRequest
from snapsight.services.analysis_service import AnalysisService
from snapsight.services.response_cache import ResponseCache


def data_uri(raw: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode()}"


IMAGE_A = "data:image/jpeg;base64,QUFB"  # "AAA"
IMAGE_B = data_uri(b"another frame")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Records calls; replies with `reply` or raises queued errors in order."""

    def __init__(self, reply: str = "A person reading at a desk.", delay: float = 0.0, errors=None):
        self.reply = reply
        self.delay = delay
        self.errors = list(errors or [])
        self.calls: list[AnalysisRequest] = []

    async def analyze(self, request: AnalysisRequest) -> str:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return self.reply


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.store: dict[str, str] = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = value


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_service(clock):
    """Factory for an AnalysisService with fast, deterministic parts."""

    def _make(transport, **queue_kwargs) -> AnalysisService:
        queue_kwargs.setdefault("interval", 0)
        queue_kwargs.setdefault("interval_cap", 0)
        return AnalysisService(
            transport,
            cache=ResponseCache(ttl_seconds=600, max_entries=1000, clock=clock),
            queue=AdmissionQueue(**queue_kwargs),
        )

    return _make


@pytest.fixture(scope="session", autouse=True)
def _create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    session.query(AnalysisRecord).delete()
    session.commit()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def api(db, fake_transport, make_service):
    """TestClient whose routes use an isolated service backed by fake_transport."""
    from fastapi.testclient import TestClient

    from snapsight.deps import get_analysis_service
    from snapsight.main import app

    service = make_service(fake_transport)
    app.dependency_overrides[get_analysis_service] = lambda: service
    try:
        with TestClient(app) as client:
            client.service = service
            yield client
    finally:
        app.dependency_overrides.clear()
