"""Appointment cancellation and SMS compensation.

When an appointment is soft-deleted, pending notifications are cancelled
in the same transaction. If a reminder or update was already delivered,
exactly one cancellation notice is queued; if nothing went out, the
household is not contacted at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.db.enums import (
    APPOINTMENT_CANCELLED_REASON,
    NotificationIntent,
    NotificationStatus,
)
from parcel_sms.db.models import Appointment
from parcel_sms.services import notification_service
from parcel_sms.services.exceptions import (
    AppointmentAlreadyPickedUp,
    AppointmentInPast,
    AppointmentNotFound,
)
from parcel_sms.services.sms_template_service import render_pickup_cancelled
from parcel_sms.utils.phone import normalize_phone_to_e164
from parcel_sms.utils.wall_clock import WallClock

logger = logging.getLogger(__name__)

DELIVERED_INTENTS = [NotificationIntent.PICKUP_REMINDER, NotificationIntent.PICKUP_UPDATED]


@dataclass
class CancellationResult:
    sms_cancelled: bool = False
    sms_sent: bool = False


def compensate_cancellation(
    db: Session, appointment: Appointment, *, clock: WallClock
) -> CancellationResult:
    """
    Cancel pending SMS for an appointment and queue a cancellation notice
    if a reminder was already delivered. Runs inside the caller's transaction.
    """
    now = clock.now().utc
    cancelled = notification_service.cancel_all_non_terminal(
        db, appointment.id, reason=APPOINTMENT_CANCELLED_REASON, now=now
    )
    result = CancellationResult(sms_cancelled=cancelled >= 1)

    if not notification_service.has_record_with_status(
        db, appointment.id, DELIVERED_INTENTS, NotificationStatus.SENT
    ):
        return result

    household = appointment.household
    enqueue_result = notification_service.enqueue(
        db,
        intent=NotificationIntent.PICKUP_CANCELLED,
        appointment_id=appointment.id,
        household_id=household.id,
        recipient=normalize_phone_to_e164(household.phone_number),
        rendered_text=render_pickup_cancelled(
            appointment.pickup_window_start, household.locale, clock
        ),
        locale=household.locale,
        due_at=now,
        now=now,
    )
    result.sms_sent = enqueue_result.created
    logger.info(
        "Appointment cancellation compensated: cancelled=%s notice_queued=%s",
        cancelled,
        result.sms_sent,
        extra=build_log_context(appointment_id=str(appointment.id)),
    )
    return result


def soft_delete_in_transaction(
    db: Session,
    appointment_id: UUID,
    *,
    deleted_by: str | None,
    clock: WallClock,
) -> CancellationResult:
    """
    Soft-delete an appointment and compensate, without validation or commit.

    For callers that remove parcels as part of a larger change. An appointment
    that is missing or already deleted is a silent no-op.
    """
    appointment = db.get(Appointment, appointment_id)
    if appointment is None or appointment.deleted_at is not None:
        return CancellationResult()

    appointment.deleted_at = clock.now().utc
    appointment.deleted_by = deleted_by
    db.flush()
    return compensate_cancellation(db, appointment, clock=clock)


def validate_cancellable(appointment: Appointment | None, now: datetime) -> Appointment:
    if appointment is None or appointment.deleted_at is not None:
        raise AppointmentNotFound("Appointment not found")
    if appointment.is_picked_up:
        raise AppointmentAlreadyPickedUp("Cannot cancel a parcel that was already picked up")
    if appointment.pickup_window_end < now:
        raise AppointmentInPast("Cannot cancel a parcel whose pickup window has passed")
    return appointment


def soft_delete_appointment(
    db: Session,
    appointment_id: UUID,
    *,
    deleted_by: str | None,
    clock: WallClock,
) -> CancellationResult:
    """Validate, soft-delete and compensate in one committed transaction."""
    appointment = validate_cancellable(db.get(Appointment, appointment_id), clock.now().utc)
    try:
        result = soft_delete_in_transaction(
            db, appointment.id, deleted_by=deleted_by, clock=clock
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result
