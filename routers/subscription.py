from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from services.subscription_manager import SubscriptionManager
from utils.deps import get_current_user_id, get_subscription_manager, require_not_banned
from utils.serialize import row_to_dict

router = APIRouter()


class CreateSubscriptionRequest(BaseModel):
    plan_type: Optional[str] = Field(default=None, max_length=50)
    payment_method: Optional[str] = Field(default=None, max_length=100)
    payment_reference: Optional[str] = Field(default=None, max_length=255)


@router.post("/", status_code=201)
def create_subscription(
    body: CreateSubscriptionRequest,
    user_id: str = Depends(require_not_banned),
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    subscription = manager.create_subscription(
        user_id,
        user_id,
        body.plan_type,
        body.payment_method,
        body.payment_reference,
    )
    return {
        "success": True,
        "data": row_to_dict(subscription),
        "message": f"Subscription created. Plan: {subscription.plan_type}.",
    }


@router.get("/status")
def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    """
    Latest subscription for the caller. Reading a lapsed subscription marks it
    expired and reverts the provider to basic tier.
    """
    subscription = manager.get_status(user_id)
    return {
        "success": True,
        "data": row_to_dict(subscription) if subscription else None,
        "message": None if subscription else "No subscription found.",
    }


@router.delete("/")
def cancel_subscription(
    user_id: str = Depends(require_not_banned),
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    cancelled = manager.cancel_subscription(user_id, user_id)
    return {
        "success": True,
        "data": row_to_dict(cancelled),
        "message": "Subscription cancelled. Provider tier reverted to basic.",
    }
