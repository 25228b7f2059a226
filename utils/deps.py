from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from db.init import get_db
from services.access_gate import AccessGate, Operation
from services.ban_ledger import BanLedger
from services.subscription_manager import SubscriptionManager
from utils.security import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):

    if credentials is None or not credentials.scheme.lower() == "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = credentials.credentials
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload


def get_current_user_id(payload=Depends(get_current_user)) -> str:
    return str(payload["sub"])


def get_optional_user_id(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Caller id for public endpoints; anonymous or invalid tokens yield None."""
    if credentials is None or not credentials.scheme.lower() == "bearer":
        return None
    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None
    return str(payload["sub"])


def get_ban_ledger(db: Session = Depends(get_db)) -> BanLedger:
    return BanLedger(db)


def get_subscription_manager(db: Session = Depends(get_db)) -> SubscriptionManager:
    return SubscriptionManager(db)


def require_not_banned(
    user_id: str = Depends(get_current_user_id),
    ledger: BanLedger = Depends(get_ban_ledger),
) -> str:
    """Access gate for mutating routes; returns the admitted caller id."""
    AccessGate(ledger).admit(user_id, Operation.WRITE)
    return user_id
