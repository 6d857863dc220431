"""Household read model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from parcel_sms.db.base import Base


class Household(Base):
    """
    A household receiving food parcels.

    Owned by the household registry; the notification engine only reads
    the contact details, preferred locale and anonymization marker.
    """

    __tablename__ = "households"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False, default="sv")
    anonymized_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_anonymized(self) -> bool:
        return self.anonymized_at is not None
