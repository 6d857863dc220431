"""Outgoing SMS notification records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from parcel_sms.db.base import Base
from parcel_sms.db.enums import DEFAULT_NOTIFICATION_STATUS


class NotificationRecord(Base):
    """
    One logical outgoing SMS.

    The idempotency key is derived from the intent and the appointment (or
    household and recipient for enrolment), never from text or time, and is
    unique across all statuses. Status moves only through conditional
    updates: queued -> sending -> sent | failed | cancelled.
    """

    __tablename__ = "outgoing_sms"
    __table_args__ = (
        Index("uq_outgoing_sms_idempotency", "idempotency_key", unique=True),
        Index(
            "idx_outgoing_sms_due",
            "status",
            "due_at",
            postgresql_where=text("status = 'queued'"),
        ),
        Index("idx_outgoing_sms_appointment", "appointment_id", "created_at"),
        Index("idx_outgoing_sms_provider_message", "provider_message_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    intent: Mapped[str] = mapped_column(String(30), nullable=False)
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("food_parcels.id", ondelete="CASCADE"), nullable=True
    )
    household_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )

    recipient: Mapped[str] = mapped_column(String(32), nullable=False)  # E.164
    rendered_text: Mapped[str] = mapped_column(Text, nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False, default="sv")

    status: Mapped[str] = mapped_column(
        String(20),
        server_default=text(f"'{DEFAULT_NOTIFICATION_STATUS.value}'"),
        default=DEFAULT_NOTIFICATION_STATUS.value,
        nullable=False,
    )
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    attempt_count: Mapped[int] = mapped_column(
        Integer, server_default=text("0"), default=0, nullable=False
    )

    provider_message_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Delivery callback from the provider (only set on sent records)
    provider_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    provider_status_updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Staff acknowledged the failure
    dismissed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    dismissed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    due_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
