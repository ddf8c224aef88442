from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .exceptions import (
    ApiError,
    InvalidCredentialsError,
    NetworkFailureError,
    RequestTimeoutError,
    SessionExpiredError,
    UnauthorizedError,
)
from .models_orders import OrderResult, OrderResultKind, SyncResult


class UserAction(str, Enum):
    REDIRECT_TO_LOGIN = "redirect_to_login"
    RETRY = "retry"
    SHOW_MESSAGE = "show_message"


@dataclass(frozen=True)
class UserFacingError:
    message: str
    action: UserAction = UserAction.SHOW_MESSAGE
    details: str | None = None
    trace_id: str | None = None

    @property
    def technical_details(self) -> str | None:
        if self.details:
            return self.details
        return None


_RESULT_ACTIONS = {
    OrderResultKind.SESSION_EXPIRED: UserAction.REDIRECT_TO_LOGIN,
    OrderResultKind.NETWORK_FAILURE: UserAction.RETRY,
    OrderResultKind.TIMEOUT: UserAction.RETRY,
    OrderResultKind.CANCELLED: UserAction.RETRY,
}


def _from_exception(exc: ApiError) -> UserFacingError:
    primary = exc.message.strip() or "Request failed"
    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    if isinstance(exc, (InvalidCredentialsError, SessionExpiredError, UnauthorizedError)):
        action = UserAction.REDIRECT_TO_LOGIN
    elif isinstance(exc, (NetworkFailureError, RequestTimeoutError)):
        action = UserAction.RETRY
    else:
        action = UserAction.SHOW_MESSAGE
    return UserFacingError(message=primary, action=action, details=details, trace_id=exc.trace_id)


def to_user_facing_error(source: ApiError | OrderResult | SyncResult) -> UserFacingError | None:
    """Map a failure to what the screen shows; successful results map to None."""
    if isinstance(source, ApiError):
        return _from_exception(source)
    if source.ok:
        return None
    if source.kind is OrderResultKind.EMPTY_CART:
        return UserFacingError(message=source.message, details=source.kind.value)
    details = source.kind.value
    if source.status_code:
        details = f"{details} (HTTP {source.status_code})"
    return UserFacingError(
        message=source.message.strip() or "Request failed",
        action=_RESULT_ACTIONS.get(source.kind, UserAction.SHOW_MESSAGE),
        details=details,
    )
