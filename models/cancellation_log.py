from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, Index, func
from db.init import Base

CANCELLED_BY_CLIENT = "client"
CANCELLED_BY_PROVIDER = "provider"


class CancellationRecord(Base):
    __tablename__ = "cancellation_log"
    __table_args__ = (
        Index("idx_cancellation_log_user", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(String(500))
    cancelled_by = Column(String(20), nullable=True)  # client / provider
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
