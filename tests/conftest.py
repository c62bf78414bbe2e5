# tests/conftest.py
import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apiwatch.clock import VirtualClock
from apiwatch.config import Settings
from apiwatch.db.database import Base
from apiwatch.exceptions import TransportError
from apiwatch.services.http_transport import TransportResponse

# Import models so metadata knows about all tables
import apiwatch.models  # noqa: F401
from apiwatch.models.endpoint import Endpoint
from apiwatch.models.metric import Metric

START = datetime(2024, 1, 1, 12, 0, 0)

SECURE_HEADERS = {
    "content-type": "application/json",
    "content-security-policy": "default-src 'self'",
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "x-xss-protection": "1; mode=block",
    "strict-transport-security": "max-age=31536000",
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def db_engine():
    """Fresh in-memory SQLite database per test, shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db(session_factory):
    """Return a new SQLAlchemy session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return VirtualClock(start=START)


@pytest.fixture()
def settings():
    return Settings(
        database_url="sqlite:///:memory:",
        performance_interval_seconds=60,
        security_interval_seconds=120,
    )


class FakeTransport:
    """
    In-memory stand-in for HttpTransport.

    Maps URL -> TransportResponse, or an exception to raise. Unknown URLs
    answer 200 with secure headers.
    """

    def __init__(self, clock: Optional[VirtualClock] = None):
        self.clock = clock
        self.responses: Dict[str, Union[TransportResponse, Exception]] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple[str, str]] = []
        self.closed = False

    def respond(self, url: str, status_code: int = 200, headers=None, body: Optional[str] = None, delay: float = 0):
        self.responses[url] = TransportResponse(
            status_code=status_code,
            headers=dict(SECURE_HEADERS if headers is None else headers),
            body=body,
        )
        self.delays[url] = delay

    def fail(self, url: str, message: str = "Connection error: connection refused"):
        self.responses[url] = TransportError(message)

    async def perform(self, method: str, url: str) -> TransportResponse:
        self.calls.append((method, url))
        delay = self.delays.get(url, 0)
        if delay and self.clock is not None:
            self.clock.advance(delay)
        outcome = self.responses.get(url)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return TransportResponse(status_code=200, headers=dict(SECURE_HEADERS), body='{"ok": true}')
        return outcome

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def transport(clock):
    return FakeTransport(clock)


@pytest.fixture()
def make_endpoint(db):
    """Create and persist an Endpoint with sensible monitoring defaults."""
    def _make(path: str = "/api/users", **fields) -> Endpoint:
        fields.setdefault("method", "GET")
        fields.setdefault("base_url", "https://api.example.com")
        fields.setdefault("response_time_threshold", 500)
        fields.setdefault("error_rate_threshold", 1.0)
        fields.setdefault("availability_threshold", 99.9)
        endpoint = Endpoint(path=path, created_at=START, **fields)
        db.add(endpoint)
        db.commit()
        db.refresh(endpoint)
        return endpoint
    return _make


@pytest.fixture()
def add_metrics(db):
    """Bulk insert metrics for an endpoint at a given time."""
    def _add(endpoint, count: int = 1, *, at: datetime = START, success: bool = True,
             status_code: Optional[int] = 200, response_time: Optional[int] = 100,
             metadata: Optional[dict] = None, spacing: timedelta = timedelta(0)) -> List[Metric]:
        rows = []
        for i in range(count):
            rows.append(Metric(
                endpoint_id=endpoint.id,
                timestamp=at + spacing * i,
                response_time=response_time,
                status_code=status_code,
                success=success,
                response_metadata=metadata,
            ))
        db.add_all(rows)
        db.commit()
        return rows
    return _add
