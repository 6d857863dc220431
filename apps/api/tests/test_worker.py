"""Worker pass: sweep then dispatch against the configured session factory."""

from datetime import timedelta

import pytest

from parcel_sms import worker
from parcel_sms.db.enums import NotificationStatus
from parcel_sms.services import notification_service


@pytest.mark.asyncio
async def test_sweep_then_dispatch(monkeypatch, session_factory, db, clock, transport, make_appointment):
    monkeypatch.setattr(worker, "SessionLocal", session_factory)
    appointment = make_appointment(starts_in=timedelta(hours=6))

    assert worker.run_sweep(clock) == 1

    clock.advance(minutes=5)
    summary = await worker.run_once(transport, clock)

    assert summary.claimed == 1
    assert summary.sent == 1
    (record,) = notification_service.get_history(db, appointment.id)
    assert record.status == NotificationStatus.SENT.value
    assert record.provider_message_id == "msg_1"
