"""Failed SMS follow-up endpoints (staff tools)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from parcel_sms.core.deps import get_clock, get_db, verify_internal_secret
from parcel_sms.core.structured_logging import mask_phone
from parcel_sms.db.enums import NotificationStatus
from parcel_sms.schemas.notification import (
    STATUS_LABELS,
    DismissRequest,
    DismissResponse,
    SmsFailureCountResponse,
    SmsFailureListResponse,
    SmsFailureRead,
)
from parcel_sms.services import sms_failure_service
from parcel_sms.services.sms_failure_service import SmsFailure
from parcel_sms.utils.wall_clock import WallClock

router = APIRouter(prefix="/sms", tags=["SMS"], dependencies=[Depends(verify_internal_secret)])

NOT_DELIVERED_LABEL = "Not delivered"


def _failure_read(failure: SmsFailure) -> SmsFailureRead:
    record, appointment, household = failure.record, failure.appointment, failure.household
    if record.status == NotificationStatus.SENT.value:
        status_label = NOT_DELIVERED_LABEL
    else:
        status_label = STATUS_LABELS.get(record.status, record.status)
    return SmsFailureRead(
        record_id=record.id,
        intent=record.intent,
        appointment_id=appointment.id,
        household_id=household.id,
        household_name=f"{household.first_name} {household.last_name}",
        recipient_masked=mask_phone(record.recipient),
        pickup_window_start=appointment.pickup_window_start,
        pickup_window_end=appointment.pickup_window_end,
        status=record.status,
        status_label=status_label,
        provider_status=record.provider_status,
        provider_status_updated_at=record.provider_status_updated_at,
        error=sms_failure_service.sanitize_error_message(record.last_error),
        sent_at=record.sent_at,
        created_at=record.created_at,
        dismissed_at=record.dismissed_at,
        dismissed_by=record.dismissed_by,
    )


@router.get("/failures", response_model=SmsFailureListResponse)
def list_failures(
    status: str = Query("active"),
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Failed SMS for upcoming pickups, active or dismissed."""
    if status not in ("active", "dismissed"):
        raise HTTPException(
            status_code=400, detail="Invalid status parameter. Must be 'active' or 'dismissed'"
        )
    failures = sms_failure_service.list_failures(
        db, now=clock.now().utc, dismissed=status == "dismissed"
    )
    return SmsFailureListResponse(failures=[_failure_read(f) for f in failures])


@router.get("/failures/count", response_model=SmsFailureCountResponse)
def count_failures(
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Number of failures still needing attention."""
    return SmsFailureCountResponse(
        failed_sms=sms_failure_service.count_failures(db, now=clock.now().utc)
    )


@router.patch("/{record_id}/dismiss", response_model=DismissResponse)
def dismiss_failure(
    record_id: UUID,
    body: DismissRequest,
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Dismiss a failure from the follow-up list, or restore it."""
    record = sms_failure_service.set_dismissed(
        db,
        record_id,
        body.dismissed,
        dismissed_by=body.dismissed_by,
        now=clock.now().utc,
    )
    if record is None:
        raise HTTPException(status_code=404, detail="SMS record not found")
    return DismissResponse(
        record_id=record.id,
        dismissed=record.dismissed_at is not None,
        dismissed_at=record.dismissed_at,
        dismissed_by=record.dismissed_by,
    )
