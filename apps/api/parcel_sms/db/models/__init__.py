"""SQLAlchemy ORM models."""

from parcel_sms.db.models.appointments import Appointment, PickupLocation
from parcel_sms.db.models.households import Household
from parcel_sms.db.models.notifications import NotificationRecord

__all__ = [
    "Appointment",
    "Household",
    "NotificationRecord",
    "PickupLocation",
]
