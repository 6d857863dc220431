"""Appointment notification endpoints (staff tools)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from parcel_sms.core.deps import get_clock, get_db, verify_internal_secret
from parcel_sms.core.rate_limit import RESEND_LIMIT, limiter
from parcel_sms.schemas.notification import (
    CancellationResponse,
    EnqueueResponse,
    NotificationRead,
    ResendRequest,
)
from parcel_sms.services import cancellation_service, notification_service, reminder_service
from parcel_sms.services.exceptions import (
    AppointmentAlreadyPickedUp,
    AppointmentInPast,
    AppointmentNotFound,
    InvalidResendRequest,
)
from parcel_sms.utils.wall_clock import WallClock

router = APIRouter(tags=["Appointments"], dependencies=[Depends(verify_internal_secret)])


def _enqueue_response(result) -> EnqueueResponse:
    return EnqueueResponse(
        record_id=result.record.id,
        created=result.created,
        status=result.record.status,
        due_at=result.record.due_at,
    )


@router.get("/{appointment_id}/notifications", response_model=list[NotificationRead])
def list_notifications(appointment_id: UUID, db: Session = Depends(get_db)):
    """SMS history for an appointment, oldest first."""
    return notification_service.get_history(db, appointment_id)


@router.post("/{appointment_id}/reminder", response_model=EnqueueResponse)
def enqueue_reminder(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Queue the pickup reminder (no-op if it already exists)."""
    try:
        result = reminder_service.enqueue_reminder(db, appointment_id, clock=clock)
    except AppointmentNotFound:
        raise HTTPException(status_code=404, detail="Appointment not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _enqueue_response(result)


@router.post("/{appointment_id}/resend", response_model=EnqueueResponse)
@limiter.limit(RESEND_LIMIT)
def resend_notification(
    request: Request,
    appointment_id: UUID,
    body: ResendRequest,
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Queue a manual resend; the nonce makes repeated clicks idempotent."""
    try:
        result = reminder_service.enqueue_resend(
            db, appointment_id, body.nonce, clock=clock, intent=body.intent
        )
    except AppointmentNotFound:
        raise HTTPException(status_code=404, detail="Appointment not found")
    except InvalidResendRequest as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _enqueue_response(result)


@router.delete("/{appointment_id}", response_model=CancellationResponse)
def cancel_appointment(
    appointment_id: UUID,
    deleted_by: str | None = None,
    db: Session = Depends(get_db),
    clock: WallClock = Depends(get_clock),
):
    """Soft-delete an appointment and compensate its SMS."""
    try:
        result = cancellation_service.soft_delete_appointment(
            db, appointment_id, deleted_by=deleted_by, clock=clock
        )
    except AppointmentNotFound:
        raise HTTPException(status_code=404, detail="Appointment not found")
    except (AppointmentAlreadyPickedUp, AppointmentInPast) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return CancellationResponse(
        appointment_id=appointment_id,
        sms_cancelled=result.sms_cancelled,
        sms_sent=result.sms_sent,
    )
