"""
Test configuration and fixtures.

Provides:
- File-backed SQLite database with the schema created per test
- Session factory shared by services and the dispatcher
- FixedClock pinned to 2025-10-10 10:00 UTC (12:00 in Stockholm)
- Fake SMS transport that records every request
- HTTPX AsyncClient with the internal secret header
"""
import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["TESTING"] = "1"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["SMS_TEST_MODE"] = "true"
os.environ["BUSINESS_TIMEZONE"] = "Europe/Stockholm"
os.environ["PUBLIC_BASE_URL"] = "https://matcentralen.example"
os.environ["SMS_CALLBACK_SECRET"] = "callback-secret-0123456789abcdefghij"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from parcel_sms.core.deps import get_clock, get_db, get_session_factory, get_sms_transport
from parcel_sms.db.base import Base
from parcel_sms.db.models import Appointment, Household, PickupLocation
from parcel_sms.main import app
from parcel_sms.services.sms_provider import SmsRequest, SmsResponse
from parcel_sms.utils.wall_clock import FixedClock

NOW = datetime(2025, 10, 10, 10, 0, tzinfo=timezone.utc)
INTERNAL_SECRET = "test-internal-secret"
CALLBACK_SECRET = "callback-secret-0123456789abcdefghij"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Fresh SQLite database file per test (separate connections per session)."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Clock / Transport
# =============================================================================

@pytest.fixture(scope="function")
def clock() -> FixedClock:
    return FixedClock(NOW, "Europe/Stockholm")


class FakeTransport:
    """Records requests; returns queued responses (default: success)."""

    def __init__(self):
        self.requests: list[SmsRequest] = []
        self.responses: list[SmsResponse] = []
        self.delay: float = 0
        self.error: Exception | None = None

    async def send(self, request: SmsRequest) -> SmsResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return SmsResponse(success=True, message_id=f"msg_{len(self.requests)}")


@pytest.fixture(scope="function")
def transport() -> FakeTransport:
    return FakeTransport()


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def household(db: Session) -> Household:
    household = Household(
        id=uuid.uuid4(),
        first_name="Anna",
        last_name="Svensson",
        phone_number="0701234567",
        locale="sv",
    )
    db.add(household)
    db.commit()
    return household


@pytest.fixture(scope="function")
def location(db: Session) -> PickupLocation:
    location = PickupLocation(id=uuid.uuid4(), name="Centrum", street_address="Storgatan 1")
    db.add(location)
    db.commit()
    return location


@pytest.fixture(scope="function")
def make_appointment(db: Session, household: Household, location: PickupLocation) -> Callable[..., Appointment]:
    """Factory: appointment starting `starts_in` from NOW, lasting 30 minutes."""

    def _make(
        starts_in: timedelta = timedelta(days=3),
        duration: timedelta = timedelta(minutes=30),
        household_obj: Household | None = None,
        **fields,
    ) -> Appointment:
        start = NOW + starts_in
        appointment = Appointment(
            id=uuid.uuid4(),
            household_id=(household_obj or household).id,
            location_id=location.id,
            pickup_window_start=start,
            pickup_window_end=start + duration,
            **fields,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


@pytest.fixture(scope="function")
def appointment(make_appointment) -> Appointment:
    return make_appointment()


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    session_factory, clock: FixedClock, transport: FakeTransport
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with DB, clock and transport overridden and the internal secret set."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_sms_transport] = lambda: transport

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    ) as c:
        yield c

    app.dependency_overrides.clear()
