from typing import Optional


class ServiceError(Exception):
    """Base error raised by the trust services; carries the HTTP status to report."""

    status_code = 400
    reason = "error"

    def __init__(self, message: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if reason is not None:
            self.reason = reason

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


class PolicyRejection(ServiceError):
    """A precondition was not met. Safe to show to the caller."""

    status_code = 403
    reason = "rejected"


class NotFound(ServiceError):
    status_code = 404
    reason = "not-found"


class AccessDenied(ServiceError):
    """The caller is banned; carries the ban metadata for the response."""

    status_code = 403
    reason = "banned"

    def __init__(self, message: str, ban: dict):
        super().__init__(message)
        self.ban = ban

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason, "banned": True, "ban": self.ban}


class InfrastructureError(ServiceError):
    """Storage failure on a fail-closed path. The message stays opaque."""

    status_code = 500
    reason = "internal-error"


# Rejection reasons
NOT_SELF = "not-self"
NOT_A_PROVIDER = "not-a-provider"
ALREADY_SUBSCRIBED = "already-subscribed"
UNKNOWN_PLAN = "unknown-plan"
NO_ACTIVE_SUBSCRIPTION = "no-active-subscription"
NOT_PARTICIPANT = "not-participant"
BOOKING_NOT_CANCELLABLE = "booking-not-cancellable"
