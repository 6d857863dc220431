"""Pydantic schemas for notifications and appointment cancellation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from parcel_sms.core.structured_logging import mask_phone
from parcel_sms.db.enums import NotificationIntent

# Labels shown to staff; raw provider errors are never exposed.
STATUS_LABELS = {
    "queued": "Scheduled",
    "sending": "Sending",
    "sent": "Sent",
    "failed": "Failed to send",
    "cancelled": "Cancelled",
}


class NotificationRead(BaseModel):
    """Notification history item."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    intent: str
    status: str
    recipient: str = Field(exclude=True)
    attempt_count: int
    cancel_reason: str | None
    due_at: datetime
    created_at: datetime
    sent_at: datetime | None

    @computed_field
    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status)

    @computed_field
    @property
    def recipient_masked(self) -> str:
        return mask_phone(self.recipient)


class EnqueueResponse(BaseModel):
    record_id: UUID
    created: bool
    status: str
    due_at: datetime


class ResendRequest(BaseModel):
    nonce: str = Field(min_length=1, max_length=64)
    intent: NotificationIntent = NotificationIntent.PICKUP_REMINDER


class CancellationResponse(BaseModel):
    appointment_id: UUID
    sms_cancelled: bool
    sms_sent: bool


class SweepResponse(BaseModel):
    reminders_created: int


class DispatchResponse(BaseModel):
    claimed: int
    sent: int
    failed: int
    cancelled: int


# =============================================================================
# Failed SMS
# =============================================================================


class SmsFailureRead(BaseModel):
    """Failed SMS for the staff follow-up list."""

    record_id: UUID
    intent: str
    appointment_id: UUID
    household_id: UUID
    household_name: str
    recipient_masked: str
    pickup_window_start: datetime
    pickup_window_end: datetime
    status: str
    status_label: str
    provider_status: str | None
    provider_status_updated_at: datetime | None
    error: str | None
    sent_at: datetime | None
    created_at: datetime
    dismissed_at: datetime | None
    dismissed_by: str | None


class SmsFailureListResponse(BaseModel):
    failures: list[SmsFailureRead]


class SmsFailureCountResponse(BaseModel):
    failed_sms: int


class DismissRequest(BaseModel):
    dismissed: bool
    dismissed_by: str = Field(min_length=1, max_length=100)


class DismissResponse(BaseModel):
    record_id: UUID
    dismissed: bool
    dismissed_at: datetime | None
    dismissed_by: str | None
