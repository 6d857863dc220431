"""API tests for the failed SMS list, dismiss and provider status callback."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient

from parcel_sms.core.config import settings
from parcel_sms.db.enums import NotificationStatus
from parcel_sms.services import notification_service, reminder_service

from conftest import CALLBACK_SECRET, NOW


def _claim_reminder(db, appointment, clock):
    reminder_service.enqueue_reminder(db, appointment.id, clock=clock)
    (record,) = notification_service.claim_due(db, 10, now=NOW + timedelta(days=3))
    return record


@pytest.fixture
def failed_record(db, clock, appointment):
    record = _claim_reminder(db, appointment, clock)
    notification_service.finalize(
        db,
        record.id,
        NotificationStatus.FAILED,
        now=NOW,
        error="permanent: HTTP 400: Invalid recipient +46701234567",
    )
    return record


@pytest.fixture
def sent_record(db, clock, make_appointment):
    record = _claim_reminder(db, make_appointment(starts_in=timedelta(days=1)), clock)
    notification_service.finalize(
        db, record.id, NotificationStatus.SENT, now=NOW, provider_message_id="hs-1"
    )
    return record


@pytest.mark.asyncio
async def test_failure_list_masks_recipient_and_error(client: AsyncClient, failed_record, household):
    response = await client.get("/sms/failures")

    assert response.status_code == 200
    (item,) = response.json()["failures"]
    assert item["record_id"] == str(failed_record.id)
    assert item["status"] == "failed"
    assert item["status_label"] == "Failed to send"
    assert item["recipient_masked"] == "+46***67"
    assert item["household_name"] == f"{household.first_name} {household.last_name}"
    assert item["error"] == "permanent: HTTP 400: Invalid recipient [PHONE REDACTED]"
    assert item["dismissed_at"] is None


@pytest.mark.asyncio
async def test_failure_list_rejects_unknown_status(client: AsyncClient):
    response = await client.get("/sms/failures", params={"status": "all"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_failure_count(client: AsyncClient, failed_record):
    response = await client.get("/sms/failures/count")
    assert response.status_code == 200
    assert response.json() == {"failed_sms": 1}


@pytest.mark.asyncio
async def test_dismiss_and_restore(client: AsyncClient, failed_record):
    url = f"/sms/{failed_record.id}/dismiss"

    dismissed = await client.patch(url, json={"dismissed": True, "dismissed_by": "staff-1"})
    assert dismissed.status_code == 200
    assert dismissed.json()["dismissed"] is True
    assert dismissed.json()["dismissed_by"] == "staff-1"
    assert (await client.get("/sms/failures")).json()["failures"] == []
    (item,) = (await client.get("/sms/failures", params={"status": "dismissed"})).json()["failures"]
    assert item["dismissed_by"] == "staff-1"
    assert (await client.get("/sms/failures/count")).json() == {"failed_sms": 0}

    restored = await client.patch(url, json={"dismissed": False, "dismissed_by": "staff-1"})
    assert restored.json()["dismissed"] is False
    assert restored.json()["dismissed_at"] is None
    assert len((await client.get("/sms/failures")).json()["failures"]) == 1


@pytest.mark.asyncio
async def test_dismiss_unknown_record(client: AsyncClient):
    response = await client.patch(
        f"/sms/{uuid.uuid4()}/dismiss", json={"dismissed": True, "dismissed_by": "staff-1"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_dismiss_requires_staff_name(client: AsyncClient, failed_record):
    response = await client.patch(
        f"/sms/{failed_record.id}/dismiss", json={"dismissed": True, "dismissed_by": ""}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_failure_endpoints_require_internal_secret(client: AsyncClient):
    response = await client.get("/sms/failures", headers={"X-Internal-Secret": "wrong"})
    assert response.status_code == 403


class TestStatusCallback:
    url = f"/webhooks/sms-status/{CALLBACK_SECRET}"

    @pytest.mark.asyncio
    async def test_undelivered_report_lists_the_record(self, client: AsyncClient, db, sent_record):
        response = await client.post(self.url, json={"apiMessageId": "hs-1", "status": "not delivered"})

        assert response.status_code == 200
        assert response.json() == {"received": True}
        db.refresh(sent_record)
        assert sent_record.provider_status == "not delivered"
        (item,) = (await client.get("/sms/failures")).json()["failures"]
        assert item["record_id"] == str(sent_record.id)
        assert item["status_label"] == "Not delivered"

    @pytest.mark.asyncio
    async def test_delivered_report_is_not_a_failure(self, client: AsyncClient, sent_record):
        await client.post(self.url, json={"apiMessageId": "hs-1", "status": "delivered"})
        assert (await client.get("/sms/failures/count")).json() == {"failed_sms": 0}

    @pytest.mark.asyncio
    async def test_unknown_message_is_acknowledged(self, client: AsyncClient):
        response = await client.post(self.url, json={"apiMessageId": "hs-404", "status": "failed"})
        assert response.status_code == 200
        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "secret",
        ["x" * len(CALLBACK_SECRET), CALLBACK_SECRET[:16]],
        ids=["wrong", "short"],
    )
    async def test_bad_secret_looks_like_missing_route(self, client: AsyncClient, sent_record, secret):
        response = await client.post(
            f"/webhooks/sms-status/{secret}", json={"apiMessageId": "hs-1", "status": "failed"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unset_secret_rejects_everything(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "SMS_CALLBACK_SECRET", "")
        response = await client.post(self.url, json={"apiMessageId": "hs-1", "status": "failed"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"status": "delivered"},
            {"apiMessageId": "   ", "status": "delivered"},
            {"apiMessageId": 12, "status": "delivered"},
            {"apiMessageId": "hs-1", "status": "read"},
            {"apiMessageId": "hs-1", "status": ["failed"]},
            ["hs-1", "failed"],
        ],
    )
    async def test_malformed_payload(self, client: AsyncClient, sent_record, payload):
        response = await client.post(self.url, json=payload)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: AsyncClient):
        response = await client.post(
            self.url, content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
