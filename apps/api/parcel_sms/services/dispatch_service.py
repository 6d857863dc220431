"""Dispatcher: claim due notifications, re-validate, send, record outcome.

Each claimed record is handled independently and concurrently. Database
work for a record happens in short sessions before and after the
transport call, so no transaction stays open while waiting on the provider.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from parcel_sms.core.config import settings
from parcel_sms.core.structured_logging import build_log_context
from parcel_sms.db.enums import NotificationStatus
from parcel_sms.db.models import Appointment, Household
from parcel_sms.services import eligibility_service, notification_service
from parcel_sms.services.sms_provider import (
    FailureKind,
    SmsRequest,
    SmsResponse,
    SmsTransport,
    failed_response,
)
from parcel_sms.services.sms_template_service import render_for_intent
from parcel_sms.utils.phone import normalize_phone_to_e164
from parcel_sms.utils.wall_clock import WallClock

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass
class DispatchSummary:
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped: int = 0
    outcomes: dict[str, str] = field(default_factory=dict)

    def record(self, record_id: UUID, outcome: str) -> None:
        self.outcomes[str(record_id)] = outcome
        if outcome == NotificationStatus.SENT.value:
            self.sent += 1
        elif outcome == NotificationStatus.FAILED.value:
            self.failed += 1
        elif outcome == NotificationStatus.CANCELLED.value:
            self.cancelled += 1
        else:
            self.skipped += 1


SKIPPED = "skipped"


# =============================================================================
# JIT re-render
# =============================================================================


def needs_rerender(
    stored_recipient: str,
    stored_text: str,
    fresh_recipient: str,
    fresh_text: str,
) -> bool:
    """True when the stored recipient or text no longer matches live data."""
    return stored_recipient != fresh_recipient or stored_text != fresh_text


def _prepare(db: Session, record_id: UUID, clock: WallClock) -> tuple[str | None, SmsRequest | None]:
    """Eligibility + re-render for one claimed record.

    Returns (outcome, None) when the record is settled without sending,
    or (None, request) when it should go to the transport.
    """
    record = notification_service.get_record(db, record_id)
    if record is None or record.status != NotificationStatus.SENDING.value:
        return SKIPPED, None

    now = clock.now().utc
    result = eligibility_service.evaluate(
        db,
        record.intent,
        appointment_id=record.appointment_id,
        household_id=record.household_id,
        now=now,
    )
    if not result.eligible:
        notification_service.cancel_claimed(db, record.id, result.reason.value, now=now)
        logger.info(
            "Notification cancelled at dispatch: %s",
            result.reason.value,
            extra=build_log_context(record_id=str(record.id), intent=record.intent),
        )
        return NotificationStatus.CANCELLED.value, None

    recipient, text = record.recipient, record.rendered_text
    household = db.get(Household, record.household_id)
    if household is not None:
        appointment = db.get(Appointment, record.appointment_id) if record.appointment_id else None
        fresh_recipient = normalize_phone_to_e164(household.phone_number)
        fresh_text = render_for_intent(
            record.intent, household=household, appointment=appointment, clock=clock
        )
        if needs_rerender(recipient, text, fresh_recipient, fresh_text):
            notification_service.apply_rerender(
                db,
                record.id,
                recipient=fresh_recipient,
                rendered_text=fresh_text,
                now=now,
            )
            logger.info(
                "Re-rendered notification before send",
                extra=build_log_context(record_id=str(record.id), intent=record.intent),
            )
            recipient, text = fresh_recipient, fresh_text

    return None, SmsRequest(to=recipient, text=text)


async def _send_with_timeout(
    transport: SmsTransport, request: SmsRequest, timeout: float
) -> SmsResponse:
    try:
        return await asyncio.wait_for(transport.send(request), timeout=timeout)
    except asyncio.TimeoutError:
        return failed_response("Send timed out", kind=FailureKind.TRANSIENT)


async def process_record(
    session_factory: SessionFactory,
    record_id: UUID,
    transport: SmsTransport,
    clock: WallClock,
    send_timeout: float,
) -> str:
    """Handle one claimed record end to end. Returns the final outcome."""
    try:
        with session_factory() as db:
            outcome, request = _prepare(db, record_id, clock)
        if request is None:
            return outcome

        response = await _send_with_timeout(transport, request, send_timeout)

        with session_factory() as db:
            now = clock.now().utc
            if response.success:
                notification_service.finalize(
                    db,
                    record_id,
                    NotificationStatus.SENT,
                    now=now,
                    provider_message_id=response.message_id,
                )
                logger.info(
                    "SMS sent, message_id=%s",
                    response.message_id,
                    extra=build_log_context(record_id=str(record_id), phone=request.to),
                )
                return NotificationStatus.SENT.value

            notification_service.finalize(
                db,
                record_id,
                NotificationStatus.FAILED,
                now=now,
                error=response.error_summary,
            )
            logger.warning(
                "SMS send failed: %s",
                response.error_summary,
                extra=build_log_context(record_id=str(record_id)),
            )
            return NotificationStatus.FAILED.value
    except Exception as e:
        logger.exception(
            "Error processing notification",
            extra=build_log_context(record_id=str(record_id)),
        )
        with session_factory() as db:
            notification_service.finalize(
                db,
                record_id,
                NotificationStatus.FAILED,
                now=clock.now().utc,
                error=f"Processing error: {e.__class__.__name__}",
            )
        return NotificationStatus.FAILED.value


async def process_due_notifications(
    session_factory: SessionFactory,
    transport: SmsTransport,
    clock: WallClock,
    *,
    batch_size: int | None = None,
    send_timeout: float | None = None,
) -> DispatchSummary:
    """Run one dispatcher pass."""
    batch_size = batch_size or settings.WORKER_BATCH_SIZE
    send_timeout = send_timeout or settings.SMS_SEND_TIMEOUT_SECONDS

    with session_factory() as db:
        claimed = notification_service.claim_due(db, batch_size, now=clock.now().utc)
        record_ids = [record.id for record in claimed]

    summary = DispatchSummary(claimed=len(record_ids))
    if not record_ids:
        return summary

    results = await asyncio.gather(
        *(
            process_record(session_factory, record_id, transport, clock, send_timeout)
            for record_id in record_ids
        ),
        return_exceptions=True,
    )
    for record_id, result in zip(record_ids, results):
        if isinstance(result, BaseException):
            logger.error(
                "Unhandled dispatcher error: %s",
                result.__class__.__name__,
                extra=build_log_context(record_id=str(record_id)),
            )
            summary.record(record_id, NotificationStatus.FAILED.value)
        else:
            summary.record(record_id, result)

    logger.info(
        "Dispatch pass: claimed=%s sent=%s failed=%s cancelled=%s",
        summary.claimed,
        summary.sent,
        summary.failed,
        summary.cancelled,
    )
    return summary
