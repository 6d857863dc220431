"""Webhooks router - SMS provider delivery callbacks."""

import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from parcel_sms.core.config import settings
from parcel_sms.core.deps import get_clock, get_db
from parcel_sms.db.enums import ProviderStatus
from parcel_sms.services import sms_failure_service
from parcel_sms.utils.wall_clock import WallClock

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)

MIN_CALLBACK_SECRET_LENGTH = 32
VALID_PROVIDER_STATUSES = {s.value for s in ProviderStatus}


def _callback_secret_valid(provided: str) -> bool:
    expected = settings.SMS_CALLBACK_SECRET.strip()
    if len(expected) < MIN_CALLBACK_SECRET_LENGTH:
        logger.error("SMS_CALLBACK_SECRET is not set or too short")
        return False
    if len(provided) < MIN_CALLBACK_SECRET_LENGTH:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


@router.post("/sms-status/{secret}")
async def receive_sms_status(
    secret: str,
    request: Request,
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """
    HelloSMS delivery status callback.

    The secret in the URL is the only authentication; a wrong secret looks
    like a missing route. Valid payloads always get 200 so the provider
    does not retry, including for unknown message ids.
    """
    if not _callback_secret_valid(secret):
        logger.warning("SMS status callback received with invalid secret")
        raise HTTPException(status_code=404, detail="Not Found")

    try:
        data = json.loads(await request.body())
    except json.JSONDecodeError:
        raise HTTPException(400, "Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(400, "Invalid payload")

    message_id = data.get("apiMessageId")
    if not isinstance(message_id, str) or not message_id.strip():
        logger.warning("SMS status callback missing or invalid apiMessageId")
        raise HTTPException(400, "Missing apiMessageId")

    status = data.get("status")
    if not isinstance(status, str) or status not in VALID_PROVIDER_STATUSES:
        logger.warning("SMS status callback has invalid status: %s", type(status).__name__)
        raise HTTPException(400, "Invalid status")

    updated = sms_failure_service.update_provider_status(
        db, message_id, status, now=clock.now().utc
    )
    if updated:
        logger.info("SMS provider status updated: message_id=%s status=%s", message_id, status)
    else:
        logger.debug("SMS status callback for unknown message: message_id=%s", message_id)
    return {"received": True}
