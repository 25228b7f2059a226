from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
import logging

from db.init import commit_or_raise, get_db
from models.booking import Booking, BOOKING_CANCELLED, BOOKING_PENDING, CANCELLABLE_STATUSES
from models.cancellation_log import CANCELLED_BY_CLIENT, CANCELLED_BY_PROVIDER
from models.profile import Profile
from services.ban_ledger import BanLedger
from services.policy import utc_isoformat
from utils.deps import get_ban_ledger, require_not_banned
from utils.errors import (
    NotFound,
    PolicyRejection,
    BOOKING_NOT_CANCELLABLE,
    NOT_PARTICIPANT,
)
from utils.serialize import row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateBookingRequest(BaseModel):
    provider_id: str = Field(min_length=1, max_length=64)
    service_category: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    scheduled_date: Optional[date] = None


class CancelBookingRequest(BaseModel):
    reason: str = Field(min_length=5, max_length=500)


@router.post("/", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    user_id: str = Depends(require_not_banned),
    db: Session = Depends(get_db),
):
    if body.provider_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot book yourself")

    provider = db.query(Profile).filter(Profile.user_id == body.provider_id).first()
    if not provider or not provider.is_provider:
        raise NotFound("Provider not found")
    if not provider.is_available:
        raise HTTPException(status_code=400, detail="Provider is not accepting bookings")

    booking = Booking(
        client_id=user_id,
        provider_id=body.provider_id,
        service_category=body.service_category,
        description=body.description,
        scheduled_date=body.scheduled_date,
        status=BOOKING_PENDING,
    )
    db.add(booking)
    commit_or_raise(db, "Failed to create booking")
    db.refresh(booking)

    return {"success": True, "data": row_to_dict(booking), "message": "Booking created successfully."}


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    body: CancelBookingRequest,
    user_id: str = Depends(require_not_banned),
    db: Session = Depends(get_db),
    ledger: BanLedger = Depends(get_ban_ledger),
):
    """
    Cancel a booking as either participant and record the strike.
    The response carries the strike outcome, including any ban just issued.
    """
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")

    is_client = booking.client_id == user_id
    is_provider = booking.provider_id == user_id
    if not is_client and not is_provider:
        raise PolicyRejection("You are not authorized to cancel this booking", reason=NOT_PARTICIPANT)

    if booking.status not in CANCELLABLE_STATUSES:
        raise PolicyRejection(
            f'Cannot cancel a "{booking.status}" booking. '
            "Only pending, confirmed, or in-progress bookings can be cancelled.",
            status_code=400,
            reason=BOOKING_NOT_CANCELLABLE,
        )

    booking.status = BOOKING_CANCELLED
    booking.notes = f"Cancelled: {body.reason}"
    commit_or_raise(db, f"Failed to cancel booking {booking_id}")

    cancelled_by = CANCELLED_BY_CLIENT if is_client else CANCELLED_BY_PROVIDER
    strike = ledger.record_cancellation(user_id, booking.id, body.reason, cancelled_by)

    db.refresh(booking)
    return {
        "success": True,
        "data": row_to_dict(booking),
        "message": f"Booking cancelled. {strike.message}",
        "cancelled_by": cancelled_by,
        "strike": strike.to_dict(),
        "ban": (
            {
                "type": strike.kind,
                "expires_at": utc_isoformat(strike.expires_at),
                "message": strike.message,
            }
            if strike.banned
            else None
        ),
    }
