"""Pickup appointment (food parcel) models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parcel_sms.db.base import Base

if TYPE_CHECKING:
    from parcel_sms.db.models.households import Household


class PickupLocation(Base):
    """A distribution point where parcels are collected."""

    __tablename__ = "pickup_locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    street_address: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Appointment(Base):
    """
    A scheduled food parcel pickup.

    Cancellation is a soft delete (deleted_at set); rows are never removed
    so notification history stays attached.
    """

    __tablename__ = "food_parcels"
    __table_args__ = (
        CheckConstraint(
            "pickup_window_start < pickup_window_end",
            name="ck_food_parcels_window_order",
        ),
        Index("idx_food_parcels_household", "household_id"),
        Index(
            "idx_food_parcels_active_window",
            "pickup_window_start",
            postgresql_where=text("deleted_at IS NULL AND is_picked_up = false"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    household_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("pickup_locations.id", ondelete="SET NULL"), nullable=True
    )

    pickup_window_start: Mapped[datetime] = mapped_column(nullable=False)
    pickup_window_end: Mapped[datetime] = mapped_column(nullable=False)
    is_picked_up: Mapped[bool] = mapped_column(
        Boolean, server_default=text("false"), default=False, nullable=False
    )

    # Soft delete / cancellation marker
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    household: Mapped["Household"] = relationship()
    location: Mapped["PickupLocation | None"] = relationship()

    def set_window(self, start: datetime, end: datetime) -> None:
        """Move the pickup window; the start must precede the end."""
        if not _before(start, end):
            raise ValueError("pickup_window_start must be before pickup_window_end")
        self.pickup_window_start = start
        self.pickup_window_end = end

    @property
    def is_cancelled(self) -> bool:
        return self.deleted_at is not None

    @property
    def household_anonymized(self) -> bool:
        return self.household is not None and self.household.is_anonymized


def _before(a: datetime, b: datetime) -> bool:
    if a.tzinfo is None:
        a = a.replace(tzinfo=timezone.utc)
    if b.tzinfo is None:
        b = b.replace(tzinfo=timezone.utc)
    return a < b
