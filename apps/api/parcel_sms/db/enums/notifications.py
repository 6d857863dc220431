"""Notification-related enums."""

from enum import Enum


class NotificationIntent(str, Enum):
    """Logical purpose of an outgoing SMS."""

    PICKUP_REMINDER = "pickup_reminder"
    PICKUP_UPDATED = "pickup_updated"
    PICKUP_CANCELLED = "pickup_cancelled"
    ENROLMENT = "enrolment"
    CONSENT_ENROLMENT = "consent_enrolment"


class NotificationStatus(str, Enum):
    """Lifecycle: queued -> sending -> sent | failed | cancelled."""

    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            NotificationStatus.SENT,
            NotificationStatus.FAILED,
            NotificationStatus.CANCELLED,
        )


class IneligibilityReason(str, Enum):
    """Why a claimed notification was cancelled at dispatch time."""

    PARCEL_NOT_FOUND = "parcel_not_found"
    PARCEL_DELETED = "parcel_deleted"
    PARCEL_PICKED_UP = "parcel_picked_up"
    HOUSEHOLD_ANONYMIZED = "household_anonymized"
    PICKUP_TIME_PASSED = "pickup_time_passed"


DEFAULT_NOTIFICATION_STATUS = NotificationStatus.QUEUED

APPOINTMENT_INTENTS = frozenset(
    {
        NotificationIntent.PICKUP_REMINDER,
        NotificationIntent.PICKUP_UPDATED,
        NotificationIntent.PICKUP_CANCELLED,
    }
)
ENROLMENT_INTENTS = frozenset(
    {NotificationIntent.ENROLMENT, NotificationIntent.CONSENT_ENROLMENT}
)
NON_TERMINAL_STATUSES = (NotificationStatus.QUEUED, NotificationStatus.SENDING)

# cancel_reason written by the cancellation compensator
APPOINTMENT_CANCELLED_REASON = "appointment_cancelled"


class ProviderStatus(str, Enum):
    """Delivery status reported by the SMS provider after a successful send."""

    DELIVERED = "delivered"
    FAILED = "failed"
    NOT_DELIVERED = "not delivered"


PROVIDER_FAILURE_STATUSES = (ProviderStatus.FAILED, ProviderStatus.NOT_DELIVERED)
