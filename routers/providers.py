import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session
import logging

from db.init import commit_or_raise, get_db
from models.profile import Profile, TIER_BASIC, TIER_SPECIALIST, USER_TYPE_PROVIDER
from services.subscription_manager import SubscriptionManager
from services.visibility import sanitize_for_viewer, sanitize_many
from utils.deps import (
    get_current_user_id,
    get_optional_user_id,
    get_subscription_manager,
    require_not_banned,
)
from utils.errors import NotFound

logger = logging.getLogger(__name__)

router = APIRouter()


class ProviderCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    city: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[str] = Field(default=None, max_length=1000)


class ProviderUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=1000)
    city: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    is_available: Optional[bool] = None
    # only consulted while the provider is a specialist
    phone_visible: Optional[bool] = None
    # NOTE: tier is not editable here; it follows the subscription lifecycle


NULLABLE_FIELDS = {"bio", "city", "phone"}


def _provider_query(db: Session):
    return db.query(Profile).filter(Profile.user_type == USER_TYPE_PROVIDER)


def _get_own_provider(db: Session, user_id: str) -> Profile:
    profile = _provider_query(db).filter(Profile.user_id == user_id).first()
    if not profile:
        raise NotFound("Provider profile not found")
    return profile


@router.get("/")
def list_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tier: Optional[str] = Query(None, pattern=f"^({TIER_BASIC}|{TIER_SPECIALIST})$"),
    city: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
):
    q = _provider_query(db).filter(Profile.is_available.is_(True))
    if tier:
        q = q.filter(Profile.provider_tier == tier)
    if city:
        q = q.filter(Profile.city.ilike(f"%{city}%"))
    if search:
        q = q.filter(or_(Profile.full_name.ilike(f"%{search}%"), Profile.bio.ilike(f"%{search}%")))

    total = q.count()
    providers = (
        q.order_by(
            Profile.is_verified.desc(),
            Profile.provider_tier.desc(),
            Profile.created_at.desc(),
            Profile.id.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "data": sanitize_many(providers, viewer_id),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


@router.get("/me")
def get_my_provider_profile(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = _get_own_provider(db, user_id)
    return {"success": True, "data": sanitize_for_viewer(profile, user_id)}


@router.put("/me")
def update_my_provider_profile(
    body: ProviderUpdate,
    user_id: str = Depends(require_not_banned),
    db: Session = Depends(get_db),
):
    profile = _get_own_provider(db, user_id)
    for k, v in body.model_dump(exclude_unset=True).items():
        if v is None and k not in NULLABLE_FIELDS:
            continue
        setattr(profile, k, v)
    commit_or_raise(db, f"Failed to update provider profile {user_id}")
    db.refresh(profile)
    return {
        "success": True,
        "data": sanitize_for_viewer(profile, user_id),
        "message": "Profile updated successfully.",
    }


@router.post("/", status_code=201)
def register_provider(
    body: ProviderCreate,
    user_id: str = Depends(require_not_banned),
    db: Session = Depends(get_db),
):
    """
    Register the caller as a provider. An existing client profile is
    converted in place; every new provider starts on the basic tier.
    """
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile and profile.is_provider:
        raise HTTPException(status_code=409, detail="Provider profile already exists")

    if profile is None:
        profile = Profile(user_id=user_id)
        db.add(profile)

    profile.user_type = USER_TYPE_PROVIDER
    profile.full_name = body.full_name
    profile.city = body.city
    profile.bio = body.bio
    if body.phone is not None:
        profile.phone = body.phone
    profile.provider_tier = TIER_BASIC
    profile.phone_visible = True

    commit_or_raise(db, f"Failed to create provider profile {user_id}")
    db.refresh(profile)
    return {
        "success": True,
        "data": sanitize_for_viewer(profile, user_id),
        "message": "Provider profile created successfully.",
    }


@router.get("/{provider_id}")
def get_provider(
    provider_id: str,
    db: Session = Depends(get_db),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
):
    profile = _provider_query(db).filter(Profile.user_id == provider_id).first()
    if not profile:
        raise NotFound("Provider not found")
    return {"success": True, "data": sanitize_for_viewer(profile, viewer_id)}


@router.put("/{provider_id}/tier")
def upgrade_provider_tier(
    provider_id: str,
    user_id: str = Depends(require_not_banned),
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    profile = manager.upgrade_tier(provider_id, user_id)
    return {
        "success": True,
        "data": sanitize_for_viewer(profile, user_id),
        "message": "Provider upgraded to specialist tier.",
    }
