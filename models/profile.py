from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, func
from db.init import Base

USER_TYPE_CLIENT = "client"
USER_TYPE_PROVIDER = "provider"

TIER_BASIC = "basic"
TIER_SPECIALIST = "specialist"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, index=True, nullable=False)
    user_type = Column(String(20), nullable=False, default=USER_TYPE_CLIENT)  # client / provider
    full_name = Column(String(100))
    phone = Column(String(20), nullable=True)
    city = Column(String(100))
    bio = Column(String(1000))
    provider_tier = Column(String(20), nullable=False, default=TIER_BASIC)  # basic / specialist
    phone_visible = Column(Boolean, nullable=False, default=True)  # only consulted for specialists
    is_available = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    @property
    def is_provider(self) -> bool:
        return self.user_type == USER_TYPE_PROVIDER

    def set_tier(self, tier: str):
        """Change tier and reset phone visibility to the tier's default."""
        if tier == self.provider_tier:
            return
        self.provider_tier = tier
        # specialists start hidden, basic providers are always listed with phone
        self.phone_visible = tier != TIER_SPECIALIST
