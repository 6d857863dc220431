"""API routers."""

from parcel_sms.routers.appointments import router as appointments_router
from parcel_sms.routers.internal import router as internal_router
from parcel_sms.routers.sms import router as sms_router
from parcel_sms.routers.webhooks import router as webhooks_router

__all__ = ["appointments_router", "internal_router", "sms_router", "webhooks_router"]
