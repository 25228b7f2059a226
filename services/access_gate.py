from enum import Enum

from models.user_ban import BAN_PERMANENT
from services.ban_ledger import BanLedger, BanStatus
from services.policy import utc_isoformat
from utils.errors import AccessDenied


class Operation(str, Enum):
    READ = "read"
    WRITE = "write"


def denial_message(status: BanStatus) -> str:
    if status.kind == BAN_PERMANENT:
        return "Your account has been permanently banned."
    return f"Your account is temporarily banned until {utc_isoformat(status.expires_at)}."


class AccessGate:
    """Admits or rejects an action by combining the operation kind with ban status."""

    def __init__(self, ledger: BanLedger):
        self.ledger = ledger

    def admit(self, user_id: str, operation: Operation = Operation.WRITE) -> BanStatus:
        # banned users can still browse
        if operation == Operation.READ:
            return BanStatus.clear()

        status = self.ledger.check_ban(user_id)
        if status.banned:
            raise AccessDenied(
                denial_message(status),
                ban={
                    "type": status.kind,
                    "expires_at": utc_isoformat(status.expires_at),
                    "reason": status.reason,
                },
            )
        return status
