"""Enum definitions for application constants."""

from parcel_sms.db.enums.notifications import (
    APPOINTMENT_CANCELLED_REASON,
    DEFAULT_NOTIFICATION_STATUS,
    APPOINTMENT_INTENTS,
    ENROLMENT_INTENTS,
    NON_TERMINAL_STATUSES,
    PROVIDER_FAILURE_STATUSES,
    IneligibilityReason,
    NotificationIntent,
    NotificationStatus,
    ProviderStatus,
)

__all__ = [
    "APPOINTMENT_CANCELLED_REASON",
    "APPOINTMENT_INTENTS",
    "DEFAULT_NOTIFICATION_STATUS",
    "ENROLMENT_INTENTS",
    "NON_TERMINAL_STATUSES",
    "PROVIDER_FAILURE_STATUSES",
    "IneligibilityReason",
    "NotificationIntent",
    "NotificationStatus",
    "ProviderStatus",
]
