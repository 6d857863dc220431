"""Rate limiting configuration for the notification API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from parcel_sms.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

RESEND_LIMIT = (
    f"{settings.RATE_LIMIT_RESEND}/minute"
    if settings.RATE_LIMIT_RESEND > 0
    else "1000/second"
)

# In-memory storage: the API runs as a single process next to the worker.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not IS_TESTING,
)
