"""FastAPI dependencies for database access, time, SMS transport and internal auth."""

from functools import lru_cache
from typing import Callable, Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from parcel_sms.core.config import settings
from parcel_sms.db.session import SessionLocal
from parcel_sms.services.sms_provider import SmsTransport, get_transport
from parcel_sms.utils.wall_clock import SystemClock, WallClock


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that opens several short sessions (dispatch)."""
    return SessionLocal


def get_clock() -> WallClock:
    return SystemClock()


@lru_cache(maxsize=1)
def get_sms_transport() -> SmsTransport:
    return get_transport()


def verify_internal_secret(x_internal_secret: str = Header(...)) -> None:
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")
