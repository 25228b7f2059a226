from sqlalchemy import Column, Integer, String, DECIMAL, TIMESTAMP, Index, func, text
from db.init import Base

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("idx_subscriptions_provider_status", "provider_id", "status"),
        # one active row per provider; closes the concurrent-create race
        Index(
            "uq_subscriptions_provider_active",
            "provider_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(String(64), nullable=False)
    plan_type = Column(String(50), nullable=False, default="specialist_monthly")
    status = Column(String(20), nullable=False, default=STATUS_ACTIVE)  # active / expired / cancelled
    started_at = Column(TIMESTAMP, nullable=False)
    expires_at = Column(TIMESTAMP, nullable=False)
    amount = Column(DECIMAL(10, 2), nullable=False)
    payment_method = Column(String(100), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
