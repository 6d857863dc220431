"""Internal scheduled endpoints, called by cron with X-Internal-Secret."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from parcel_sms.core.deps import (
    get_clock,
    get_db,
    get_session_factory,
    get_sms_transport,
    verify_internal_secret,
)
from parcel_sms.schemas.notification import DispatchResponse, SweepResponse
from parcel_sms.services import dispatch_service, reminder_service
from parcel_sms.services.sms_provider import SmsTransport
from parcel_sms.utils.wall_clock import WallClock

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["Internal"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/sms-sweep", response_model=SweepResponse)
def sweep_reminders(
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Queue reminders for upcoming appointments that are missing one."""
    created = reminder_service.sweep_missing_reminders(db, clock=clock)
    return SweepResponse(reminders_created=created)


@router.post("/sms-dispatch", response_model=DispatchResponse)
async def dispatch_due(
    session_factory=Depends(get_session_factory),
    transport: SmsTransport = Depends(get_sms_transport),
    clock: WallClock = Depends(get_clock),
):
    """Run one dispatcher pass."""
    summary = await dispatch_service.process_due_notifications(session_factory, transport, clock)
    return DispatchResponse(
        claimed=summary.claimed,
        sent=summary.sent,
        failed=summary.failed,
        cancelled=summary.cancelled,
    )
