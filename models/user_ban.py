from sqlalchemy import Column, Integer, String, TIMESTAMP, Index, func
from db.init import Base

BAN_TEMPORARY = "temporary"
BAN_PERMANENT = "permanent"


class UserBan(Base):
    __tablename__ = "user_bans"
    __table_args__ = (
        Index("idx_user_bans_user", "user_id", "ban_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False)
    ban_type = Column(String(20), nullable=False)  # temporary / permanent
    reason = Column(String(500), nullable=False)
    banned_until = Column(TIMESTAMP, nullable=True)  # NULL means permanent
    strike_count = Column(Integer, nullable=False, default=1)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
