"""Reminder, resend, reschedule and enrolment operations."""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.db.enums import NotificationIntent, NotificationStatus
from parcel_sms.db.models import Appointment, Household, NotificationRecord
from parcel_sms.services import notification_service
from parcel_sms.services.exceptions import AppointmentNotFound, InvalidResendRequest
from parcel_sms.services.notification_service import EnqueueResult
from parcel_sms.services.scheduling_service import (
    REMINDER_LEAD_TIME,
    calculate_immediate_due_at,
    calculate_reminder_due_at,
)
from parcel_sms.services.sms_template_service import render_for_intent
from parcel_sms.utils.phone import normalize_phone_to_e164
from parcel_sms.utils.wall_clock import WallClock

logger = logging.getLogger(__name__)

RESENDABLE_INTENTS = (NotificationIntent.PICKUP_REMINDER, NotificationIntent.PICKUP_UPDATED)
MIN_TIME_BEFORE_PICKUP_FOR_RESEND = timedelta(hours=1)


def _load_appointment(db: Session, appointment_id: UUID) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound("Appointment not found")
    return appointment


def _enqueue_for_appointment(
    db: Session,
    appointment: Appointment,
    intent: NotificationIntent,
    *,
    clock: WallClock,
    due_at,
    idempotency_key: str | None = None,
) -> EnqueueResult:
    household = appointment.household
    return notification_service.enqueue(
        db,
        intent=intent,
        appointment_id=appointment.id,
        household_id=household.id,
        recipient=normalize_phone_to_e164(household.phone_number),
        rendered_text=render_for_intent(
            intent, household=household, appointment=appointment, clock=clock
        ),
        locale=household.locale,
        due_at=due_at,
        now=clock.now().utc,
        idempotency_key=idempotency_key,
    )


# =============================================================================
# Reminders
# =============================================================================


def enqueue_reminder(db: Session, appointment_id: UUID, *, clock: WallClock) -> EnqueueResult:
    """Queue the pickup reminder for an appointment (no-op if one exists)."""
    appointment = _load_appointment(db, appointment_id)
    now = clock.now().utc
    result = _enqueue_for_appointment(
        db,
        appointment,
        NotificationIntent.PICKUP_REMINDER,
        clock=clock,
        due_at=calculate_reminder_due_at(appointment.pickup_window_start, now),
    )
    db.commit()
    return result


def enqueue_reminders_for_new_appointments(
    db: Session, appointment_ids: list[UUID], *, clock: WallClock
) -> int:
    """Queue reminders for freshly created appointments. Returns the number created."""
    now = clock.now().utc
    created = 0
    for appointment_id in appointment_ids:
        appointment = db.get(Appointment, appointment_id)
        if appointment is None or appointment.deleted_at is not None:
            continue
        if not appointment.household.phone_number:
            logger.warning(
                "Household has no phone number, skipping reminder",
                extra=build_log_context(appointment_id=str(appointment_id)),
            )
            continue
        try:
            result = _enqueue_for_appointment(
                db,
                appointment,
                NotificationIntent.PICKUP_REMINDER,
                clock=clock,
                due_at=calculate_reminder_due_at(appointment.pickup_window_start, now),
            )
        except ValueError:
            logger.warning(
                "Invalid household phone number, skipping reminder",
                extra=build_log_context(appointment_id=str(appointment_id)),
            )
            continue
        created += int(result.created)
    db.commit()
    return created


def sweep_missing_reminders(db: Session, *, clock: WallClock) -> int:
    """
    Queue reminders for upcoming appointments that have none.

    Covers appointments created while enqueue failed: active (not deleted,
    not picked up, household not anonymized), window not over, starting
    within the reminder lead time, with no pickup_reminder record at all.
    """
    now = clock.now().utc
    has_reminder = exists().where(
        NotificationRecord.appointment_id == Appointment.id,
        NotificationRecord.intent == NotificationIntent.PICKUP_REMINDER.value,
    )
    stmt = (
        select(Appointment)
        .join(Household, Household.id == Appointment.household_id)
        .where(
            Appointment.deleted_at.is_(None),
            Appointment.is_picked_up == False,  # noqa: E712
            Household.anonymized_at.is_(None),
            Appointment.pickup_window_start <= now + REMINDER_LEAD_TIME,
            Appointment.pickup_window_end > now,
            ~has_reminder,
        )
        .order_by(Appointment.pickup_window_start)
    )

    created = 0
    for appointment in db.scalars(stmt).all():
        try:
            result = _enqueue_for_appointment(
                db,
                appointment,
                NotificationIntent.PICKUP_REMINDER,
                clock=clock,
                due_at=calculate_reminder_due_at(appointment.pickup_window_start, now),
            )
        except ValueError:
            logger.warning(
                "Invalid household phone number, skipping reminder",
                extra=build_log_context(appointment_id=str(appointment.id)),
            )
            continue
        created += int(result.created)
    db.commit()

    if created:
        logger.info("Reminder sweep queued %s missing reminders", created)
    return created


# =============================================================================
# Manual resend
# =============================================================================


def enqueue_resend(
    db: Session,
    appointment_id: UUID,
    nonce: str,
    *,
    clock: WallClock,
    intent: NotificationIntent = NotificationIntent.PICKUP_REMINDER,
) -> EnqueueResult:
    """
    Queue a manual resend with a fresh key (natural key + nonce).

    Reusing a nonce is a no-op. Only pickup reminders/updates can be resent,
    and only while the pickup is more than an hour away.
    """
    intent = NotificationIntent(intent)
    if intent not in RESENDABLE_INTENTS:
        raise InvalidResendRequest(f"Cannot resend {intent.value} notifications")
    if not nonce:
        raise InvalidResendRequest("Resend requires a nonce")

    appointment = _load_appointment(db, appointment_id)
    now = clock.now().utc
    if appointment.deleted_at is not None:
        raise AppointmentNotFound("Appointment not found")
    if appointment.pickup_window_start - now <= MIN_TIME_BEFORE_PICKUP_FOR_RESEND:
        raise InvalidResendRequest("Pickup is too close or has passed")

    natural_key = notification_service.build_idempotency_key(intent, appointment_id=appointment.id)
    result = _enqueue_for_appointment(
        db,
        appointment,
        intent,
        clock=clock,
        due_at=now,
        idempotency_key=notification_service.build_resend_key(natural_key, nonce),
    )
    db.commit()
    return result


# =============================================================================
# Reschedule
# =============================================================================


def handle_appointment_rescheduled(
    db: Session, appointment_id: UUID, *, clock: WallClock
) -> EnqueueResult | None:
    """
    React to a pickup window change.

    A still-queued reminder gets a recomputed due time (its text is refreshed
    at send time). If a reminder already went out, one pickup_updated notice
    is queued instead.
    """
    appointment = _load_appointment(db, appointment_id)
    if appointment.deleted_at is not None:
        return None
    now = clock.now().utc

    reminder = notification_service.get_latest_for_intent(
        db, appointment.id, NotificationIntent.PICKUP_REMINDER
    )
    if reminder is not None and reminder.status == NotificationStatus.QUEUED.value:
        notification_service.reschedule_queued(
            db,
            reminder.id,
            calculate_reminder_due_at(appointment.pickup_window_start, now),
            now=now,
        )
        db.commit()
        return None

    if not notification_service.has_record_with_status(
        db,
        appointment.id,
        [NotificationIntent.PICKUP_REMINDER, NotificationIntent.PICKUP_UPDATED],
        NotificationStatus.SENT,
    ):
        if reminder is None:
            return enqueue_reminder(db, appointment.id, clock=clock)
        return None

    result = _enqueue_for_appointment(
        db,
        appointment,
        NotificationIntent.PICKUP_UPDATED,
        clock=clock,
        due_at=calculate_immediate_due_at(now),
    )
    db.commit()
    return result


# =============================================================================
# Enrolment
# =============================================================================


def enqueue_enrolment(
    db: Session, household_id: UUID, *, clock: WallClock, consent: bool = False
) -> EnqueueResult:
    """Queue the welcome SMS for a newly enrolled household."""
    household = db.get(Household, household_id)
    if household is None:
        raise AppointmentNotFound("Household not found")
    intent = NotificationIntent.CONSENT_ENROLMENT if consent else NotificationIntent.ENROLMENT
    now = clock.now().utc
    result = notification_service.enqueue(
        db,
        intent=intent,
        household_id=household.id,
        recipient=normalize_phone_to_e164(household.phone_number),
        rendered_text=render_for_intent(intent, household=household, appointment=None, clock=clock),
        locale=household.locale,
        due_at=now,
        now=now,
    )
    db.commit()
    return result
