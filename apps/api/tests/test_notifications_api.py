"""API tests for the appointment notification and internal scheduled endpoints."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient

from parcel_sms.core.config import settings


@pytest.mark.asyncio
async def test_reminder_then_history(client: AsyncClient, appointment):
    response = await client.post(f"/appointments/{appointment.id}/reminder")
    assert response.status_code == 200
    data = response.json()
    assert data["created"] is True
    assert data["status"] == "queued"

    again = await client.post(f"/appointments/{appointment.id}/reminder")
    assert again.json()["created"] is False
    assert again.json()["record_id"] == data["record_id"]

    history = await client.get(f"/appointments/{appointment.id}/notifications")
    assert history.status_code == 200
    (item,) = history.json()
    assert item["intent"] == "pickup_reminder"
    assert item["status_label"] == "Scheduled"
    assert item["recipient_masked"] == "+46***67"
    assert "recipient" not in item
    assert "last_error" not in item


@pytest.mark.asyncio
async def test_reminder_unknown_appointment(client: AsyncClient):
    response = await client.post(f"/appointments/{uuid.uuid4()}/reminder")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_resend_is_idempotent_per_nonce(client: AsyncClient, appointment):
    url = f"/appointments/{appointment.id}/resend"

    first = await client.post(url, json={"nonce": "click-1"})
    repeat = await client.post(url, json={"nonce": "click-1"})
    other = await client.post(url, json={"nonce": "click-2"})

    assert first.status_code == 200
    assert first.json()["created"] is True
    assert repeat.json()["record_id"] == first.json()["record_id"]
    assert repeat.json()["created"] is False
    assert other.json()["created"] is True


@pytest.mark.asyncio
async def test_resend_rejected_close_to_pickup(client: AsyncClient, make_appointment):
    appointment = make_appointment(starts_in=timedelta(minutes=30))
    response = await client.post(
        f"/appointments/{appointment.id}/resend", json={"nonce": "click-1"}
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_resend_requires_nonce(client: AsyncClient, appointment):
    response = await client.post(f"/appointments/{appointment.id}/resend", json={"nonce": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_appointment(client: AsyncClient, appointment):
    await client.post(f"/appointments/{appointment.id}/reminder")

    response = await client.delete(
        f"/appointments/{appointment.id}", params={"deleted_by": "staff-1"}
    )
    assert response.status_code == 200
    assert response.json() == {
        "appointment_id": str(appointment.id),
        "sms_cancelled": True,
        "sms_sent": False,
    }

    history = await client.get(f"/appointments/{appointment.id}/notifications")
    (item,) = history.json()
    assert item["status"] == "cancelled"
    assert item["cancel_reason"] == "appointment_cancelled"

    again = await client.delete(f"/appointments/{appointment.id}")
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_cancel_picked_up_appointment_conflicts(client: AsyncClient, make_appointment):
    appointment = make_appointment(is_picked_up=True)
    response = await client.delete(f"/appointments/{appointment.id}")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_sweep_and_dispatch(client: AsyncClient, make_appointment, clock, transport):
    appointment = make_appointment(starts_in=timedelta(days=1))

    sweep = await client.post("/internal/scheduled/sms-sweep")
    assert sweep.json() == {"reminders_created": 1}

    # Reminder is held for the grace period
    early = await client.post("/internal/scheduled/sms-dispatch")
    assert early.json()["claimed"] == 0

    clock.advance(minutes=10)
    dispatch = await client.post("/internal/scheduled/sms-dispatch")
    assert dispatch.status_code == 200
    assert dispatch.json() == {"claimed": 1, "sent": 1, "failed": 0, "cancelled": 0}
    (request,) = transport.requests
    assert request.to == "+46701234567"

    history = await client.get(f"/appointments/{appointment.id}/notifications")
    (item,) = history.json()
    assert item["status"] == "sent"
    assert item["attempt_count"] == 1


class TestInternalSecret:
    @pytest.mark.asyncio
    async def test_wrong_secret(self, client: AsyncClient):
        response = await client.post(
            "/internal/scheduled/sms-sweep", headers={"X-Internal-Secret": "wrong"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_appointment_routes_are_protected(self, client: AsyncClient, appointment):
        response = await client.get(
            f"/appointments/{appointment.id}/notifications",
            headers={"X-Internal-Secret": "wrong"},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "INTERNAL_SECRET", "")
        response = await client.post("/internal/scheduled/sms-dispatch")
        assert response.status_code == 501


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
