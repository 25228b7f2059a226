"""
Provider subscription lifecycle and the provider tier it controls.

Subscription rows move ``active -> expired`` (discovered lazily on read) or
``active -> cancelled``; neither transition is reversed, a renewal is a new
row. Every write that changes a subscription's status commits together with
the matching tier change on the provider profile.

Unlike the ban ledger this manager fails closed: storage errors surface as
``InfrastructureError``.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.init import commit_or_raise, safe_rollback
from models.profile import Profile, TIER_BASIC, TIER_SPECIALIST
from models.subscription import Subscription, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_EXPIRED
from services.policy import DEFAULT_POLICY, PolicyConfig, utc_now
from utils.errors import (
    InfrastructureError,
    NotFound,
    PolicyRejection,
    ALREADY_SUBSCRIBED,
    NO_ACTIVE_SUBSCRIPTION,
    NOT_A_PROVIDER,
    NOT_SELF,
    UNKNOWN_PLAN,
)

logger = logging.getLogger(__name__)


class SubscriptionManager:
    def __init__(
        self,
        db: Session,
        policy: PolicyConfig = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.policy = policy
        self.clock = clock

    def create_subscription(
        self,
        provider_id: str,
        caller_id: str,
        plan_type: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> Subscription:
        """
        Sell a new term to ``provider_id``.

        Does not touch the provider tier; ``upgrade_tier`` is the separate step
        that raises it once an active subscription exists.
        """
        if plan_type is None:
            plan_type = self.policy.default_plan
        if provider_id != caller_id:
            raise PolicyRejection("You can only create subscriptions for yourself", reason=NOT_SELF)

        now = self.clock()
        profile = self._get_profile(provider_id)
        if profile is None or not profile.is_provider:
            raise PolicyRejection("Only providers can create subscriptions", reason=NOT_A_PROVIDER)

        # a lapsed term still flagged active would block the new row
        self._expire_lapsed(provider_id, now)

        existing = self._find_active(provider_id, now)
        if existing is not None:
            raise PolicyRejection(
                f"You already have an active subscription expiring on {existing.expires_at:%Y-%m-%d}",
                status_code=409,
                reason=ALREADY_SUBSCRIBED,
            )

        plan = self.policy.plan(plan_type)
        if plan is None:
            raise PolicyRejection(
                f"Invalid plan type: {plan_type}. Available: {', '.join(self.policy.plans)}",
                status_code=400,
                reason=UNKNOWN_PLAN,
            )

        subscription = Subscription(
            provider_id=provider_id,
            plan_type=plan_type,
            status=STATUS_ACTIVE,
            started_at=now,
            expires_at=now + timedelta(days=plan.days),
            amount=plan.amount,
            payment_method=payment_method or None,
            payment_reference=payment_reference or None,
            created_at=now,
        )
        try:
            self.db.add(subscription)
            self.db.commit()
        except IntegrityError as exc:
            # another request inserted the active row between our check and insert
            safe_rollback(self.db)
            logger.warning(f"Concurrent subscription create rejected for provider {provider_id}")
            raise PolicyRejection(
                "You already have an active subscription",
                status_code=409,
                reason=ALREADY_SUBSCRIBED,
            ) from exc
        except SQLAlchemyError as exc:
            safe_rollback(self.db)
            logger.exception(f"Error creating subscription for provider {provider_id}")
            raise InfrastructureError("Failed to create subscription") from exc

        self.db.refresh(subscription)
        logger.info(f"Created {plan_type} subscription {subscription.id} for provider {provider_id}")
        return subscription

    def get_status(self, provider_id: str) -> Optional[Subscription]:
        """
        Latest subscription for ``provider_id``, or None if it never subscribed.

        An ``active`` row whose expiry has passed is flipped to ``expired`` and
        the provider is downgraded to basic before returning.
        """
        now = self.clock()
        try:
            subscription = (
                self.db.query(Subscription)
                .filter(Subscription.provider_id == provider_id)
                .order_by(Subscription.created_at.desc(), Subscription.id.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            safe_rollback(self.db)
            logger.exception(f"Error reading subscription status for provider {provider_id}")
            raise InfrastructureError("Failed to fetch subscription") from exc

        if subscription is None:
            return None

        if subscription.status == STATUS_ACTIVE and subscription.expires_at <= now:
            self._expire([subscription], provider_id)

        return subscription

    def cancel_subscription(self, provider_id: str, caller_id: str) -> Subscription:
        if provider_id != caller_id:
            raise PolicyRejection("You can only cancel your own subscription", reason=NOT_SELF)

        subscription = self.get_status(provider_id)
        if subscription is None or subscription.status != STATUS_ACTIVE:
            raise PolicyRejection(
                "No active subscription to cancel",
                status_code=404,
                reason=NO_ACTIVE_SUBSCRIPTION,
            )

        subscription.status = STATUS_CANCELLED
        profile = self._get_profile(provider_id)
        if profile is not None:
            profile.set_tier(TIER_BASIC)
        commit_or_raise(
            self.db,
            "Failed to cancel subscription",
            f"Failed to cancel subscription for provider {provider_id}",
        )

        self.db.refresh(subscription)
        logger.info(f"Cancelled subscription {subscription.id}; provider {provider_id} reverted to basic")
        return subscription

    def upgrade_tier(self, provider_id: str, caller_id: str) -> Profile:
        """Raise the provider to specialist after re-checking for an active term."""
        if provider_id != caller_id:
            raise PolicyRejection("You can only upgrade your own profile", reason=NOT_SELF)

        profile = self._get_profile(provider_id)
        if profile is None:
            raise NotFound("Provider not found")
        if not profile.is_provider:
            raise PolicyRejection("Only providers can be upgraded", reason=NOT_A_PROVIDER)

        if self._find_active(provider_id, self.clock()) is None:
            raise PolicyRejection(
                "An active subscription is required to upgrade to specialist tier",
                status_code=402,
                reason=NO_ACTIVE_SUBSCRIPTION,
            )

        profile.set_tier(TIER_SPECIALIST)
        commit_or_raise(
            self.db,
            "Failed to upgrade tier",
            f"Failed to upgrade tier for provider {provider_id}",
        )

        self.db.refresh(profile)
        logger.info(f"Provider {provider_id} upgraded to specialist tier")
        return profile

    # ---- helpers ----

    def _get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            return self.db.query(Profile).filter(Profile.user_id == user_id).first()
        except SQLAlchemyError as exc:
            safe_rollback(self.db)
            logger.exception(f"Error loading profile {user_id}")
            raise InfrastructureError("Failed to load provider profile") from exc

    def _find_active(self, provider_id: str, now: datetime) -> Optional[Subscription]:
        try:
            return (
                self.db.query(Subscription)
                .filter(Subscription.provider_id == provider_id)
                .filter(Subscription.status == STATUS_ACTIVE)
                .filter(Subscription.expires_at > now)
                .order_by(Subscription.expires_at.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            safe_rollback(self.db)
            logger.exception(f"Error checking active subscription for provider {provider_id}")
            raise InfrastructureError("Failed to check subscription") from exc

    def _expire_lapsed(self, provider_id: str, now: datetime):
        try:
            lapsed = (
                self.db.query(Subscription)
                .filter(Subscription.provider_id == provider_id)
                .filter(Subscription.status == STATUS_ACTIVE)
                .filter(Subscription.expires_at <= now)
                .all()
            )
        except SQLAlchemyError as exc:
            safe_rollback(self.db)
            logger.exception(f"Error checking lapsed subscriptions for provider {provider_id}")
            raise InfrastructureError("Failed to check subscription") from exc

        if lapsed:
            self._expire(lapsed, provider_id)

    def _expire(self, subscriptions: Iterable[Subscription], provider_id: str):
        ids = []
        for subscription in subscriptions:
            subscription.status = STATUS_EXPIRED
            ids.append(subscription.id)

        profile = self._get_profile(provider_id)
        if profile is not None:
            profile.set_tier(TIER_BASIC)
        commit_or_raise(
            self.db,
            "Failed to expire subscription",
            f"Failed to expire subscriptions {ids} for provider {provider_id}",
        )
        logger.info(f"Expired subscriptions {ids}; provider {provider_id} downgraded to basic")
