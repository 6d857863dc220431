"""Notification store: idempotency keys, enqueue, claim and finalize transitions."""

from datetime import timedelta
import uuid

import pytest
from sqlalchemy import func, select

from parcel_sms.db.enums import NotificationIntent, NotificationStatus
from parcel_sms.db.models import NotificationRecord
from parcel_sms.services import notification_service
from parcel_sms.services.exceptions import MissingAppointmentId

from conftest import NOW


def _enqueue(db, appointment, intent=NotificationIntent.PICKUP_REMINDER, due_at=NOW, key=None, text="hello"):
    result = notification_service.enqueue(
        db,
        intent=intent,
        appointment_id=appointment.id,
        household_id=appointment.household_id,
        recipient="+46701234567",
        rendered_text=text,
        due_at=due_at,
        now=NOW,
        idempotency_key=key,
    )
    db.commit()
    return result


def _count(db) -> int:
    return db.scalar(select(func.count()).select_from(NotificationRecord))


# =============================================================================
# Idempotency keys
# =============================================================================

class TestIdempotencyKeys:
    def test_appointment_intents_key_on_appointment(self):
        appointment_id = uuid.uuid4()
        assert (
            notification_service.build_idempotency_key(
                NotificationIntent.PICKUP_REMINDER, appointment_id=appointment_id
            )
            == f"pickup_reminder|{appointment_id}"
        )
        assert (
            notification_service.build_idempotency_key("pickup_cancelled", appointment_id=appointment_id)
            == f"pickup_cancelled|{appointment_id}"
        )

    def test_enrolment_intents_share_namespace(self):
        household_id = uuid.uuid4()
        plain = notification_service.build_idempotency_key(
            NotificationIntent.ENROLMENT, household_id=household_id, recipient="+46701234567"
        )
        consent = notification_service.build_idempotency_key(
            NotificationIntent.CONSENT_ENROLMENT, household_id=household_id, recipient="+46701234567"
        )
        assert plain == consent == f"enrolment|{household_id}|+46701234567"

    def test_missing_appointment_id_raises(self):
        with pytest.raises(MissingAppointmentId):
            notification_service.build_idempotency_key(NotificationIntent.PICKUP_UPDATED)

    def test_resend_key_extends_natural_key(self):
        assert notification_service.build_resend_key("pickup_reminder|x", "n1") == "pickup_reminder|x|resend|n1"


# =============================================================================
# Enqueue
# =============================================================================

class TestEnqueue:
    def test_duplicate_enqueue_is_a_noop(self, db, appointment):
        first = _enqueue(db, appointment)
        second = _enqueue(db, appointment, text="different text", due_at=NOW + timedelta(hours=1))

        assert first.created is True
        assert second.created is False
        assert second.record.id == first.record.id
        assert second.record.rendered_text == "hello"
        assert _count(db) == 1

    def test_terminal_record_still_blocks_same_key(self, db, appointment):
        first = _enqueue(db, appointment)
        notification_service.cancel_all_non_terminal(db, appointment.id, reason="test", now=NOW)
        db.commit()

        again = _enqueue(db, appointment)
        assert again.created is False
        assert again.record.id == first.record.id
        assert _count(db) == 1

    def test_missing_appointment_is_rejected_before_write(self, db, household):
        with pytest.raises(MissingAppointmentId):
            notification_service.enqueue(
                db,
                intent=NotificationIntent.PICKUP_REMINDER,
                appointment_id=None,
                household_id=household.id,
                recipient="+46701234567",
                rendered_text="hello",
                due_at=NOW,
                now=NOW,
            )
        assert _count(db) == 0

    def test_enqueued_record_is_queued(self, db, appointment):
        record = _enqueue(db, appointment).record
        assert record.status == NotificationStatus.QUEUED.value
        assert record.idempotency_key == f"pickup_reminder|{appointment.id}"
        assert record.attempt_count == 0
        assert record.due_at == NOW


# =============================================================================
# Claim
# =============================================================================

class TestClaim:
    def test_claim_due_marks_sending(self, db, make_appointment):
        a1, a2, a3 = make_appointment(), make_appointment(), make_appointment()
        _enqueue(db, a1, due_at=NOW - timedelta(minutes=2))
        _enqueue(db, a2, due_at=NOW)
        _enqueue(db, a3, due_at=NOW + timedelta(minutes=1))

        claimed = notification_service.claim_due(db, 10, now=NOW)

        assert [r.appointment_id for r in claimed] == [a1.id, a2.id]
        assert all(r.status == NotificationStatus.SENDING.value for r in claimed)
        assert all(r.attempt_count == 1 for r in claimed)

    def test_claim_respects_limit_and_due_order(self, db, make_appointment):
        a1, a2 = make_appointment(), make_appointment()
        _enqueue(db, a2, due_at=NOW - timedelta(minutes=1))
        _enqueue(db, a1, due_at=NOW - timedelta(minutes=5))

        claimed = notification_service.claim_due(db, 1, now=NOW)
        assert [r.appointment_id for r in claimed] == [a1.id]

    def test_second_claimer_gets_nothing(self, db, session_factory, appointment):
        _enqueue(db, appointment)

        with session_factory() as worker_a, session_factory() as worker_b:
            won = notification_service.claim_due(worker_a, 10, now=NOW)
            lost = notification_service.claim_due(worker_b, 10, now=NOW)

        assert len(won) == 1
        assert lost == []

    def test_cancelled_record_is_not_claimed(self, db, appointment):
        _enqueue(db, appointment)
        notification_service.cancel_all_non_terminal(db, appointment.id, reason="test", now=NOW)
        db.commit()

        assert notification_service.claim_due(db, 10, now=NOW) == []


# =============================================================================
# Finalize
# =============================================================================

class TestFinalize:
    def test_finalize_sent(self, db, appointment):
        record = _enqueue(db, appointment).record
        notification_service.claim_due(db, 10, now=NOW)

        assert notification_service.finalize(
            db, record.id, NotificationStatus.SENT, now=NOW, provider_message_id="m-1"
        )
        db.refresh(record)
        assert record.status == NotificationStatus.SENT.value
        assert record.provider_message_id == "m-1"
        assert record.sent_at == NOW

    def test_finalize_failed_stores_error(self, db, appointment):
        record = _enqueue(db, appointment).record
        notification_service.claim_due(db, 10, now=NOW)

        assert notification_service.finalize(
            db, record.id, "failed", now=NOW, error="transient: HTTP 429"
        )
        db.refresh(record)
        assert record.status == NotificationStatus.FAILED.value
        assert record.last_error == "transient: HTTP 429"

    def test_finalize_mismatch_returns_false(self, db, appointment, caplog):
        record = _enqueue(db, appointment).record

        # Still queued: never claimed
        assert notification_service.finalize(db, record.id, NotificationStatus.SENT, now=NOW) is False
        assert "did not apply" in caplog.text
        db.refresh(record)
        assert record.status == NotificationStatus.QUEUED.value

    def test_finalize_twice_only_applies_once(self, db, appointment):
        record = _enqueue(db, appointment).record
        notification_service.claim_due(db, 10, now=NOW)

        assert notification_service.finalize(db, record.id, NotificationStatus.SENT, now=NOW)
        assert notification_service.finalize(db, record.id, NotificationStatus.FAILED, now=NOW) is False
        db.refresh(record)
        assert record.status == NotificationStatus.SENT.value

    def test_finalize_rejects_non_final_outcome(self, db, appointment):
        record = _enqueue(db, appointment).record
        with pytest.raises(ValueError):
            notification_service.finalize(db, record.id, NotificationStatus.CANCELLED, now=NOW)

    def test_cancel_wins_over_late_finalize(self, db, appointment):
        record = _enqueue(db, appointment).record
        notification_service.claim_due(db, 10, now=NOW)
        cancelled = notification_service.cancel_all_non_terminal(
            db, appointment.id, reason="appointment_cancelled", now=NOW
        )
        db.commit()

        assert cancelled == 1
        assert notification_service.finalize(db, record.id, NotificationStatus.SENT, now=NOW) is False
        db.refresh(record)
        assert record.status == NotificationStatus.CANCELLED.value


# =============================================================================
# Appointment-side transitions and history
# =============================================================================

def test_cancel_all_non_terminal_leaves_sent_records(db, appointment):
    reminder = _enqueue(db, appointment).record
    notification_service.claim_due(db, 10, now=NOW)
    notification_service.finalize(db, reminder.id, NotificationStatus.SENT, now=NOW)
    update = _enqueue(db, appointment, intent=NotificationIntent.PICKUP_UPDATED)

    count = notification_service.cancel_all_non_terminal(
        db, appointment.id, reason="appointment_cancelled", now=NOW
    )
    db.commit()

    assert count == 1
    history = {r.id: r for r in notification_service.get_history(db, appointment.id)}
    assert history[reminder.id].status == NotificationStatus.SENT.value
    assert history[update.record.id].status == NotificationStatus.CANCELLED.value
    assert history[update.record.id].cancel_reason == "appointment_cancelled"


def test_reschedule_queued_only_moves_queued(db, appointment):
    record = _enqueue(db, appointment).record
    later = NOW + timedelta(hours=3)

    assert notification_service.reschedule_queued(db, record.id, later, now=NOW)
    db.commit()
    notification_service.claim_due(db, 10, now=later)
    assert notification_service.reschedule_queued(db, record.id, NOW, now=NOW) is False


def test_history_is_oldest_first(db, appointment):
    first = _enqueue(db, appointment).record
    second = notification_service.enqueue(
        db,
        intent=NotificationIntent.PICKUP_UPDATED,
        appointment_id=appointment.id,
        household_id=appointment.household_id,
        recipient="+46701234567",
        rendered_text="update",
        due_at=NOW,
        now=NOW + timedelta(minutes=1),
    ).record
    db.commit()

    history = notification_service.get_history(db, appointment.id)
    assert [r.id for r in history] == [first.id, second.id]
