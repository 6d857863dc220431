"""Failed SMS tracking: provider delivery callbacks and the staff failure list.

A record counts as a failure when the send itself failed (`status = failed`)
or when the provider later reported it undeliverable (`status = sent` with a
failed / not delivered provider status). Staff work through the list by
resending or dismissing.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.db.enums import PROVIDER_FAILURE_STATUSES, NotificationStatus, ProviderStatus
from parcel_sms.db.models import Appointment, Household, NotificationRecord

logger = logging.getLogger(__name__)

FAILURE_LIST_LIMIT = 100
# Sent without any delivery report after this long
STALE_DELIVERY_AFTER = timedelta(hours=24)

_PHONE_PATTERNS = (
    re.compile(r"\+\d{1,3}[-.\s]?\d{6,14}"),
    re.compile(r"\b07\d[-.\s]?\d{3}[-.\s]?\d{2}[-.\s]?\d{2}\b"),
    re.compile(r"\b\d{7,15}\b"),
)
PHONE_REDACTED = "[PHONE REDACTED]"


@dataclass
class SmsFailure:
    record: NotificationRecord
    appointment: Appointment
    household: Household


def sanitize_error_message(message: str | None) -> str | None:
    """Redact phone numbers from provider error text before showing it to staff."""
    if not message:
        return None
    for pattern in _PHONE_PATTERNS:
        message = pattern.sub(PHONE_REDACTED, message)
    return message


def _failure_condition():
    return or_(
        NotificationRecord.status == NotificationStatus.FAILED.value,
        and_(
            NotificationRecord.status == NotificationStatus.SENT.value,
            NotificationRecord.provider_status.in_([s.value for s in PROVIDER_FAILURE_STATUSES]),
        ),
    )


# =============================================================================
# Provider delivery callback
# =============================================================================


def update_provider_status(
    db: Session,
    provider_message_id: str,
    status: ProviderStatus | str,
    *,
    now: datetime,
) -> bool:
    """
    Store the provider's delivery status on a sent record.

    Later callbacks overwrite earlier ones. Returns False when no sent
    record carries the message id (unknown or old message).
    """
    status = ProviderStatus(status)
    result = db.execute(
        update(NotificationRecord)
        .where(
            NotificationRecord.provider_message_id == provider_message_id,
            NotificationRecord.status == NotificationStatus.SENT.value,
        )
        .values(provider_status=status.value, provider_status_updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount >= 1


# =============================================================================
# Failure list
# =============================================================================


def list_failures(
    db: Session,
    *,
    now: datetime,
    dismissed: bool = False,
    limit: int = FAILURE_LIST_LIMIT,
) -> list[SmsFailure]:
    """Failed SMS for active, upcoming pickups, soonest pickup first."""
    dismiss_filter = (
        NotificationRecord.dismissed_at.is_not(None)
        if dismissed
        else NotificationRecord.dismissed_at.is_(None)
    )
    stmt = (
        select(NotificationRecord, Appointment, Household)
        .join(Appointment, Appointment.id == NotificationRecord.appointment_id)
        .join(Household, Household.id == Appointment.household_id)
        .where(
            Appointment.deleted_at.is_(None),
            Appointment.pickup_window_end >= now,
            dismiss_filter,
            _failure_condition(),
        )
        .order_by(Appointment.pickup_window_start, NotificationRecord.created_at)
        .limit(limit)
    )
    return [
        SmsFailure(record=record, appointment=appointment, household=household)
        for record, appointment, household in db.execute(stmt).all()
    ]


def count_failures(db: Session, *, now: datetime) -> int:
    """
    Count undismissed failures for the navigation badge.

    Also counts sends that never got a delivery report within a day.
    Anonymized households are excluded.
    """
    stale = and_(
        NotificationRecord.status == NotificationStatus.SENT.value,
        NotificationRecord.provider_status.is_(None),
        NotificationRecord.sent_at < now - STALE_DELIVERY_AFTER,
    )
    stmt = (
        select(func.count(NotificationRecord.id))
        .join(Household, Household.id == NotificationRecord.household_id)
        .where(
            NotificationRecord.dismissed_at.is_(None),
            Household.anonymized_at.is_(None),
            or_(_failure_condition(), stale),
        )
    )
    return db.scalar(stmt) or 0


# =============================================================================
# Dismiss / restore
# =============================================================================


def set_dismissed(
    db: Session,
    record_id: UUID,
    dismissed: bool,
    *,
    dismissed_by: str | None,
    now: datetime,
) -> NotificationRecord | None:
    """Dismiss (or restore) a failure. Returns None if the record does not exist."""
    values = (
        {"dismissed_at": now, "dismissed_by": dismissed_by}
        if dismissed
        else {"dismissed_at": None, "dismissed_by": None}
    )
    result = db.execute(
        update(NotificationRecord)
        .where(NotificationRecord.id == record_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None

    logger.info(
        "SMS failure %s by %s",
        "dismissed" if dismissed else "restored",
        dismissed_by,
        extra=build_log_context(record_id=str(record_id)),
    )
    return db.get(NotificationRecord, record_id, populate_existing=True)
