"""Send-time eligibility checks.

Appointment state can change between enqueue and dispatch, so every
claimed notification is re-validated against the live appointment right
before the transport call.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from parcel_sms.db.enums import ENROLMENT_INTENTS, IneligibilityReason, NotificationIntent
from parcel_sms.db.models import Appointment, Household


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: IneligibilityReason | None = None


ELIGIBLE = EligibilityResult(eligible=True)


def evaluate_appointment(appointment: Appointment | None, now: datetime) -> EligibilityResult:
    """
    Check an appointment in strict priority order; the first match wins:
    not found, deleted, picked up, household anonymized, window ended.
    """
    if appointment is None:
        return EligibilityResult(False, IneligibilityReason.PARCEL_NOT_FOUND)
    if appointment.deleted_at is not None:
        return EligibilityResult(False, IneligibilityReason.PARCEL_DELETED)
    if appointment.is_picked_up:
        return EligibilityResult(False, IneligibilityReason.PARCEL_PICKED_UP)
    if appointment.household_anonymized:
        return EligibilityResult(False, IneligibilityReason.HOUSEHOLD_ANONYMIZED)
    if appointment.pickup_window_end < now:
        return EligibilityResult(False, IneligibilityReason.PICKUP_TIME_PASSED)
    return ELIGIBLE


def evaluate(
    db: Session,
    intent: NotificationIntent | str,
    *,
    appointment_id: UUID | None,
    household_id: UUID | None,
    now: datetime,
) -> EligibilityResult:
    """Eligibility for a notification of the given intent."""
    intent = NotificationIntent(intent)

    # Cancellation notices go out once created; the appointment is deleted by definition.
    if intent == NotificationIntent.PICKUP_CANCELLED:
        return ELIGIBLE

    if intent in ENROLMENT_INTENTS:
        household = db.get(Household, household_id) if household_id else None
        if household is None:
            return EligibilityResult(False, IneligibilityReason.PARCEL_NOT_FOUND)
        if household.is_anonymized:
            return EligibilityResult(False, IneligibilityReason.HOUSEHOLD_ANONYMIZED)
        return ELIGIBLE

    appointment = db.get(Appointment, appointment_id) if appointment_id else None
    return evaluate_appointment(appointment, now)
