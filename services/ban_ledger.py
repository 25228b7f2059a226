"""
Ban ledger: derives a user's current ban status and applies escalating
discipline for cancellation abuse.

Bans are append-only rows in ``user_bans``. The current status is derived on
every call, never cached, so a temporary ban that just lapsed stops blocking
on the very next request.

Two cancellations by the same user racing each other can both read the same
window count and both escalate. The ledger does not lock against that.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.init import safe_rollback
from models.cancellation_log import CancellationRecord
from models.user_ban import UserBan, BAN_PERMANENT, BAN_TEMPORARY
from services.policy import DEFAULT_POLICY, PolicyConfig, utc_isoformat, utc_now
from utils.errors import InfrastructureError

logger = logging.getLogger(__name__)


@dataclass
class BanStatus:
    banned: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    ban_id: Optional[int] = None

    @classmethod
    def clear(cls) -> "BanStatus":
        return cls(banned=False)

    @classmethod
    def from_ban(cls, ban: UserBan) -> "BanStatus":
        return cls(
            banned=True,
            kind=ban.ban_type,
            reason=ban.reason,
            expires_at=ban.banned_until,
            ban_id=ban.id,
        )

    def to_dict(self) -> dict:
        return {
            "banned": self.banned,
            "type": self.kind,
            "reason": self.reason,
            "expires_at": utc_isoformat(self.expires_at),
        }


@dataclass
class StrikeResult:
    banned: bool
    strike_count: int
    message: str
    kind: Optional[str] = None
    expires_at: Optional[datetime] = None
    # strikes left before a temp ban, or temp bans left before a permanent one
    remaining: int = 0

    def to_dict(self) -> dict:
        return {
            "banned": self.banned,
            "type": self.kind,
            "strike_count": self.strike_count,
            "message": self.message,
            "expires_at": utc_isoformat(self.expires_at),
            "remaining": self.remaining,
        }


class BanLedger:
    def __init__(
        self,
        db: Session,
        policy: PolicyConfig = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.policy = policy
        self.clock = clock

    # ---- Ban status ----

    def check_ban(self, user_id: str) -> BanStatus:
        """
        Return the most severe active ban for ``user_id``.

        A permanent ban outranks every temporary ban; among temporary bans the
        one with the latest expiry wins. A storage failure fails open: the
        user is reported as not banned and the error is logged.
        """
        now = self.clock()
        try:
            ban = (
                self.db.query(UserBan)
                .filter(UserBan.user_id == user_id)
                .filter(
                    or_(
                        UserBan.ban_type == BAN_PERMANENT,
                        and_(UserBan.ban_type == BAN_TEMPORARY, UserBan.banned_until > now),
                    )
                )
                .order_by(
                    case((UserBan.ban_type == BAN_PERMANENT, 0), else_=1),
                    UserBan.banned_until.desc(),
                    UserBan.id.desc(),
                )
                .first()
            )
        except SQLAlchemyError:
            logger.exception(f"Ban check failed for user {user_id}; failing open")
            safe_rollback(self.db)
            return BanStatus.clear()

        if ban is None:
            return BanStatus.clear()
        return BanStatus.from_ban(ban)

    def cancellation_count(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Number of cancellations by ``user_id`` inside the rolling window."""
        now = now or self.clock()
        window_start = now - self.policy.cancel_window
        try:
            count = (
                self.db.query(func.count(CancellationRecord.id))
                .filter(CancellationRecord.user_id == user_id)
                .filter(CancellationRecord.created_at >= window_start)
                .scalar()
            )
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to count cancellations for user {user_id}")
            safe_rollback(self.db)
            raise InfrastructureError("Failed to process cancellation strikes") from exc
        return count or 0

    # ---- Strikes ----

    def record_cancellation(
        self,
        user_id: str,
        booking_id: int,
        reason: Optional[str],
        cancelled_by: Optional[str] = None,
    ) -> StrikeResult:
        """
        Log one cancellation and apply the strike policy.

        Logging is best-effort. If the row cannot be written the cancellation
        still counts as a strike for this request. Counting and ban issuance
        fail closed with ``InfrastructureError``.
        """
        now = self.clock()
        logged = self._log_cancellation(user_id, booking_id, reason, cancelled_by, now)

        strike_count = self.cancellation_count(user_id, now=now)
        if not logged:
            strike_count += 1

        threshold = self.policy.cancel_threshold
        if strike_count >= threshold:
            return self._escalate(user_id, strike_count, now)

        remaining = threshold - strike_count
        return StrikeResult(
            banned=False,
            strike_count=strike_count,
            remaining=remaining,
            message=(
                f"Warning: {strike_count} cancellation(s) in the last "
                f"{self.policy.cancel_window_days} days. {remaining} more before a temporary ban."
            ),
        )

    def _log_cancellation(self, user_id, booking_id, reason, cancelled_by, now) -> bool:
        record = CancellationRecord(
            user_id=user_id,
            booking_id=booking_id,
            reason=reason,
            cancelled_by=cancelled_by,
            created_at=now,
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError:
            logger.exception(f"Failed to log cancellation of booking {booking_id} by user {user_id}")
            safe_rollback(self.db)
            return False
        return True

    def _escalate(self, user_id: str, strike_count: int, now: datetime) -> StrikeResult:
        try:
            temp_bans = (
                self.db.query(func.count(UserBan.id))
                .filter(UserBan.user_id == user_id)
                .filter(UserBan.ban_type == BAN_TEMPORARY)
                .scalar()
            ) or 0
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to count temporary bans for user {user_id}")
            safe_rollback(self.db)
            raise InfrastructureError("Failed to process ban") from exc

        total_temp_bans = temp_bans + 1
        limit = self.policy.perm_ban_after_temp_bans

        if total_temp_bans >= limit:
            reason = f"Permanent ban: {total_temp_bans} temporary bans issued for excessive cancellations"
            self._issue(
                UserBan(
                    user_id=user_id,
                    ban_type=BAN_PERMANENT,
                    reason=reason,
                    banned_until=None,
                    strike_count=strike_count,
                    created_at=now,
                )
            )
            logger.info(f"Issued permanent ban to user {user_id} after {total_temp_bans} temporary bans")
            return StrikeResult(
                banned=True,
                kind=BAN_PERMANENT,
                strike_count=strike_count,
                message=(
                    "Your account has been permanently banned due to excessive cancellations: "
                    f"{total_temp_bans} temporary bans issued."
                ),
            )

        banned_until = now + self.policy.temp_ban_duration
        self._issue(
            UserBan(
                user_id=user_id,
                ban_type=BAN_TEMPORARY,
                reason=f"Temporary ban: {strike_count} cancellations in {self.policy.cancel_window_days} days",
                banned_until=banned_until,
                strike_count=strike_count,
                created_at=now,
            )
        )
        remaining = limit - total_temp_bans
        logger.info(f"Issued temporary ban #{total_temp_bans} to user {user_id} until {banned_until.isoformat()}")
        return StrikeResult(
            banned=True,
            kind=BAN_TEMPORARY,
            strike_count=strike_count,
            expires_at=banned_until,
            remaining=remaining,
            message=(
                f"Your account has been temporarily banned until {banned_until:%Y-%m-%d}. "
                f"This is temporary ban #{total_temp_bans}. "
                f"{remaining} more will result in a permanent ban."
            ),
        )

    def _issue(self, ban: UserBan):
        try:
            self.db.add(ban)
            self.db.commit()
        except SQLAlchemyError as exc:
            logger.exception(f"Error creating {ban.ban_type} ban for user {ban.user_id}")
            safe_rollback(self.db)
            raise InfrastructureError("Failed to process ban") from exc
        self.db.refresh(ban)
