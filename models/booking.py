from sqlalchemy import Column, Integer, String, Date, TIMESTAMP, func
from db.init import Base

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_IN_PROGRESS = "in_progress"
BOOKING_COMPLETED = "completed"
BOOKING_CANCELLED = "cancelled"

CANCELLABLE_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_IN_PROGRESS)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(64), index=True, nullable=False)
    provider_id = Column(String(64), index=True, nullable=False)
    service_category = Column(String(100), nullable=False)
    description = Column(String(1000))
    scheduled_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=BOOKING_PENDING, index=True)
    notes = Column(String(1000))
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
