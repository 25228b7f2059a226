from fastapi import APIRouter, Depends

from services.ban_ledger import BanLedger
from utils.deps import get_ban_ledger, get_current_user_id

router = APIRouter()


@router.get("/me")
def get_my_ban_status(
    user_id: str = Depends(get_current_user_id),
    ledger: BanLedger = Depends(get_ban_ledger),
):
    """
    Current ban status plus the number of cancellations counted against the
    caller in the rolling window. Read-only, so banned users can call it.
    """
    status = ledger.check_ban(user_id)
    strikes = ledger.cancellation_count(user_id)
    return {
        "success": True,
        "data": {
            **status.to_dict(),
            "strike_count": strikes,
            "strike_threshold": ledger.policy.cancel_threshold,
            "window_days": ledger.policy.cancel_window_days,
        },
    }
