"""Shared fixtures for the test modules: in-memory store, fake clock, seed helpers."""
import os
import sys
from datetime import datetime, timedelta, timezone

# Add parent directory to path to import modules
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.init import Base, register_models
from models.profile import Profile, TIER_BASIC, USER_TYPE_PROVIDER
from models.user_ban import UserBan, BAN_TEMPORARY
from utils.security import ALGORITHM, SECRET_KEY

register_models()

DAY_ZERO = datetime(2026, 3, 1, 9, 0, 0)


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    def __init__(self, start: datetime = DAY_ZERO):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def at_day(self, day: int) -> datetime:
        self.now = DAY_ZERO + timedelta(days=day)
        return self.now


def add_profile(
    db,
    user_id,
    user_type=USER_TYPE_PROVIDER,
    tier=TIER_BASIC,
    phone="5551234567",
    phone_visible=True,
    **fields,
):
    profile = Profile(
        user_id=user_id,
        user_type=user_type,
        full_name=fields.pop("full_name", f"User {user_id}"),
        phone=phone,
        city=fields.pop("city", "Brooklyn"),
        provider_tier=tier,
        phone_visible=phone_visible,
        is_available=fields.pop("is_available", True),
        is_verified=fields.pop("is_verified", False),
        **fields,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def add_temp_ban(db, user_id, created_at, days=7):
    ban = UserBan(
        user_id=user_id,
        ban_type=BAN_TEMPORARY,
        reason="Temporary ban: 3 cancellations in 30 days",
        banned_until=created_at + timedelta(days=days),
        strike_count=3,
        created_at=created_at,
    )
    db.add(ban)
    db.commit()
    return ban


def create_access_token(user_id, minutes=60):
    """Sign a token the way the identity provider does, with ``sub`` set to the user id."""
    claims = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
