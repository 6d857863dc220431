"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from sqlalchemy import text

from parcel_sms.core.config import settings
from parcel_sms.db.session import engine

# ============================================================================
# Sentry (only when a DSN is configured outside dev)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Recipients' phone numbers must not leave the system
    )
    logging.info("Sentry initialized (env=%s)", settings.ENV)

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from parcel_sms.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Parcel SMS API",
    description="Pickup SMS scheduling and dispatch",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ============================================================================
# Routers
# ============================================================================

from parcel_sms.routers import appointments_router, internal_router, sms_router, webhooks_router

app.include_router(appointments_router, prefix="/appointments")
app.include_router(sms_router)
app.include_router(internal_router)
app.include_router(webhooks_router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Checks the database connection; reports environment and version.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
