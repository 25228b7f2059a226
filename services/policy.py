"""
Trust policy constants.

Thresholds, windows and the plan table are fixed for every user. They are
grouped in one frozen structure so the ban ledger and subscription manager
receive them at construction and tests can pass a variant.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class PlanTerms:
    days: int
    amount: Decimal


DEFAULT_PLANS = MappingProxyType({
    "specialist_monthly": PlanTerms(days=30, amount=Decimal("50.00")),
    "specialist_yearly": PlanTerms(days=365, amount=Decimal("500.00")),
})


@dataclass(frozen=True)
class PolicyConfig:
    # 3 cancellations in 30 days = 7-day temp ban
    cancel_threshold: int = 3
    cancel_window_days: int = 30
    temp_ban_days: int = 7
    # 3 temp bans = permanent ban
    perm_ban_after_temp_bans: int = 3
    plans: Mapping[str, PlanTerms] = field(default_factory=lambda: DEFAULT_PLANS)
    default_plan: str = "specialist_monthly"

    @property
    def cancel_window(self) -> timedelta:
        return timedelta(days=self.cancel_window_days)

    @property
    def temp_ban_duration(self) -> timedelta:
        return timedelta(days=self.temp_ban_days)

    def plan(self, plan_type: str):
        return self.plans.get(plan_type)


DEFAULT_POLICY = PolicyConfig()


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns of the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 rendering of a naive UTC timestamp, marked with ``Z``."""
    if value is None:
        return None
    return value.isoformat() + "Z"
