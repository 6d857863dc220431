"""Notification record store.

Every status change is a conditional UPDATE on the current status, so
concurrent dispatchers and the cancellation compensator can race on the
same row and exactly one of them wins.

Functions that take part in a caller's transaction (enqueue, cancel_all_non_terminal,
reschedule_queued) only flush; the dispatcher-side transitions (claim_due,
cancel_claimed, apply_rerender, finalize) commit immediately.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.db.enums import (
    APPOINTMENT_INTENTS,
    NON_TERMINAL_STATUSES,
    NotificationIntent,
    NotificationStatus,
)
from parcel_sms.db.models import NotificationRecord
from parcel_sms.services.exceptions import MissingAppointmentId

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


@dataclass
class EnqueueResult:
    record: NotificationRecord
    created: bool


# =============================================================================
# Idempotency keys
# =============================================================================


def build_idempotency_key(
    intent: NotificationIntent | str,
    *,
    appointment_id: UUID | str | None = None,
    household_id: UUID | str | None = None,
    recipient: str | None = None,
) -> str:
    """
    Build the natural idempotency key for a notification.

    - pickup_* intents: "{intent}|{appointment_id}"
    - enrolment intents: "enrolment|{household_id}|{recipient}"
      (consent_enrolment shares the enrolment namespace)

    Raises:
        MissingAppointmentId: appointment-bound intent without an appointment
    """
    intent = NotificationIntent(intent)
    if intent in APPOINTMENT_INTENTS:
        if not appointment_id:
            raise MissingAppointmentId(f"{intent.value} requires an appointment id")
        return f"{intent.value}|{appointment_id}"
    if not household_id or not recipient:
        raise ValueError(f"{intent.value} requires household id and recipient")
    return f"{NotificationIntent.ENROLMENT.value}|{household_id}|{recipient}"


def build_resend_key(natural_key: str, nonce: str) -> str:
    """Key for a manual resend: the natural key plus a caller-supplied nonce."""
    return f"{natural_key}|resend|{nonce}"


# =============================================================================
# Enqueue
# =============================================================================


def get_by_key(db: Session, idempotency_key: str) -> NotificationRecord | None:
    return db.scalars(
        select(NotificationRecord).where(
            NotificationRecord.idempotency_key == idempotency_key
        )
    ).first()


def enqueue(
    db: Session,
    *,
    intent: NotificationIntent | str,
    household_id: UUID,
    recipient: str,
    rendered_text: str,
    due_at: datetime,
    now: datetime,
    appointment_id: UUID | None = None,
    locale: str = "sv",
    idempotency_key: str | None = None,
) -> EnqueueResult:
    """
    Insert a queued record unless one with the same key already exists.

    A key collision is a successful no-op: the existing record is returned
    with created=False, whatever its status.
    """
    intent = NotificationIntent(intent)
    if intent in APPOINTMENT_INTENTS and appointment_id is None:
        raise MissingAppointmentId(f"{intent.value} requires an appointment id")

    key = idempotency_key or build_idempotency_key(
        intent,
        appointment_id=appointment_id,
        household_id=household_id,
        recipient=recipient,
    )

    existing = get_by_key(db, key)
    if existing is not None:
        logger.info(
            "Notification already exists for key, skipping enqueue",
            extra=build_log_context(record_id=str(existing.id), intent=intent.value),
        )
        return EnqueueResult(record=existing, created=False)

    record = NotificationRecord(
        intent=intent.value,
        appointment_id=appointment_id,
        household_id=household_id,
        recipient=recipient,
        rendered_text=rendered_text,
        locale=locale,
        status=NotificationStatus.QUEUED.value,
        idempotency_key=key,
        due_at=due_at,
        created_at=now,
    )
    try:
        with db.begin_nested():
            db.add(record)
    except IntegrityError:
        # Lost an insert race on the unique key
        existing = get_by_key(db, key)
        if existing is None:
            raise
        logger.info(
            "Notification insert raced on idempotency key, using existing record",
            extra=build_log_context(record_id=str(existing.id), intent=intent.value),
        )
        return EnqueueResult(record=existing, created=False)

    logger.info(
        "Queued %s notification due at %s",
        intent.value,
        due_at.isoformat(),
        extra=build_log_context(
            record_id=str(record.id),
            appointment_id=str(appointment_id) if appointment_id else None,
            phone=recipient,
        ),
    )
    return EnqueueResult(record=record, created=True)


# =============================================================================
# Dispatcher transitions
# =============================================================================


def claim_due(db: Session, limit: int, *, now: datetime) -> list[NotificationRecord]:
    """
    Claim up to `limit` due records for this caller (queued -> sending).

    Candidates are read with SKIP LOCKED on PostgreSQL; each is then claimed
    with its own conditional update and only rows this caller flipped are
    returned. Claiming increments attempt_count.
    """
    candidates = (
        select(NotificationRecord.id)
        .where(
            NotificationRecord.status == NotificationStatus.QUEUED.value,
            NotificationRecord.due_at <= now,
        )
        .order_by(NotificationRecord.due_at, NotificationRecord.created_at)
        .limit(limit)
    )
    if db.get_bind().dialect.name == "postgresql":
        candidates = candidates.with_for_update(skip_locked=True)

    claimed_ids: list[UUID] = []
    for record_id in db.scalars(candidates).all():
        result = db.execute(
            update(NotificationRecord)
            .where(
                NotificationRecord.id == record_id,
                NotificationRecord.status == NotificationStatus.QUEUED.value,
            )
            .values(
                status=NotificationStatus.SENDING.value,
                attempt_count=NotificationRecord.attempt_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            claimed_ids.append(record_id)
    db.commit()

    if not claimed_ids:
        return []
    return list(
        db.scalars(
            select(NotificationRecord)
            .where(NotificationRecord.id.in_(claimed_ids))
            .order_by(NotificationRecord.due_at, NotificationRecord.created_at)
            .execution_options(populate_existing=True)
        ).all()
    )


def apply_rerender(
    db: Session,
    record_id: UUID,
    *,
    recipient: str,
    rendered_text: str,
    now: datetime,
) -> bool:
    """Replace the content of a claimed record before it is sent."""
    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.id == record_id,
            NotificationRecord.status == NotificationStatus.SENDING.value,
        )
        .values(recipient=recipient, rendered_text=rendered_text, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def cancel_claimed(db: Session, record_id: UUID, reason: str, *, now: datetime) -> bool:
    """Cancel a claimed record that turned out to be ineligible (sending -> cancelled)."""
    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.id == record_id,
            NotificationRecord.status == NotificationStatus.SENDING.value,
        )
        .values(
            status=NotificationStatus.CANCELLED.value,
            cancel_reason=reason,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        logger.warning(
            "Cancel of claimed notification did not apply (status changed)",
            extra=build_log_context(record_id=str(record_id)),
        )
        return False
    return True


def finalize(
    db: Session,
    record_id: UUID,
    outcome: NotificationStatus | str,
    *,
    now: datetime,
    provider_message_id: str | None = None,
    error: str | None = None,
) -> bool:
    """
    Record the transport outcome (sending -> sent | failed).

    Returns False (and logs a warning) if the record was no longer in
    `sending`; this never raises for a lost race.
    """
    outcome = NotificationStatus(outcome)
    if outcome not in (NotificationStatus.SENT, NotificationStatus.FAILED):
        raise ValueError(f"Invalid final outcome: {outcome.value}")

    values: dict = {"status": outcome.value, "updated_at": now}
    if outcome == NotificationStatus.SENT:
        values.update(sent_at=now, provider_message_id=provider_message_id, last_error=None)
    else:
        values["last_error"] = (error or "Unknown error")[:MAX_ERROR_LENGTH]

    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.id == record_id,
            NotificationRecord.status == NotificationStatus.SENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount != 1:
        logger.warning(
            "Finalize to %s did not apply, record no longer sending",
            outcome.value,
            extra=build_log_context(record_id=str(record_id)),
        )
        return False
    return True


# =============================================================================
# Appointment-side transitions
# =============================================================================


def cancel_all_non_terminal(
    db: Session, appointment_id: UUID, *, reason: str, now: datetime
) -> int:
    """Cancel every queued or sending record of an appointment. Returns the count."""
    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.appointment_id == appointment_id,
            NotificationRecord.status.in_([s.value for s in NON_TERMINAL_STATUSES]),
        )
        .values(
            status=NotificationStatus.CANCELLED.value,
            cancel_reason=reason,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.flush()
    return result.rowcount


def reschedule_queued(
    db: Session, record_id: UUID, due_at: datetime, *, now: datetime
) -> bool:
    """Move the due time of a record that is still queued."""
    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.id == record_id,
            NotificationRecord.status == NotificationStatus.QUEUED.value,
        )
        .values(due_at=due_at, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.flush()
    return result.rowcount == 1


# =============================================================================
# Queries
# =============================================================================


def get_record(db: Session, record_id: UUID) -> NotificationRecord | None:
    return db.get(NotificationRecord, record_id)


def get_history(db: Session, appointment_id: UUID) -> list[NotificationRecord]:
    """All records for an appointment, oldest first."""
    return list(
        db.scalars(
            select(NotificationRecord)
            .where(NotificationRecord.appointment_id == appointment_id)
            .order_by(NotificationRecord.created_at, NotificationRecord.id)
            .execution_options(populate_existing=True)
        ).all()
    )


def has_record_with_status(
    db: Session,
    appointment_id: UUID,
    intents: list[NotificationIntent],
    status: NotificationStatus,
) -> bool:
    stmt = (
        select(NotificationRecord.id)
        .where(
            NotificationRecord.appointment_id == appointment_id,
            NotificationRecord.intent.in_([i.value for i in intents]),
            NotificationRecord.status == status.value,
        )
        .limit(1)
    )
    return db.scalars(stmt).first() is not None


def get_latest_for_intent(
    db: Session, appointment_id: UUID, intent: NotificationIntent
) -> NotificationRecord | None:
    """Most recent record for an appointment and intent (any status)."""
    return db.scalars(
        select(NotificationRecord)
        .where(
            NotificationRecord.appointment_id == appointment_id,
            NotificationRecord.intent == intent.value,
        )
        .order_by(NotificationRecord.created_at.desc())
        .limit(1)
    ).first()
