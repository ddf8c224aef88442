from .clock import Clock, SystemClock
from .config import ConfigError, KioskConfig, load_config
from .credential_store import CredentialStore, FileCredentialStore, InMemoryCredentialStore
from .exceptions import (
    ApiError,
    InvalidCredentialsError,
    NetworkFailureError,
    NotAuthenticatedError,
    RequestTimeoutError,
    SessionExpiredError,
    UnauthorizedError,
    UpstreamRejectedError,
)
from .http_client import HttpClient
from .idempotency import IDEMPOTENCY_HEADER, new_idempotency_key
from .idle_monitor import AsyncioTickScheduler, IdleMonitor, IdleState, TickScheduler
from .kiosk import KioskCore
from .models import Credential, Identity, LoginResult, SessionState, SessionStatus
from .models_orders import (
    CartLine,
    OrderConfirmation,
    OrderResult,
    OrderResultKind,
    SyncKind,
    SyncResult,
)
from .order_pipeline import OrderSubmissionPipeline, SubmissionHandle
from .order_transform import build_order_submission, expand_line_items
from .session import SessionManager
from .ui_errors import UserAction, UserFacingError, to_user_facing_error

__all__ = [
    "ApiError",
    "AsyncioTickScheduler",
    "CartLine",
    "Clock",
    "ConfigError",
    "Credential",
    "CredentialStore",
    "FileCredentialStore",
    "HttpClient",
    "IDEMPOTENCY_HEADER",
    "Identity",
    "IdleMonitor",
    "IdleState",
    "InMemoryCredentialStore",
    "InvalidCredentialsError",
    "KioskConfig",
    "KioskCore",
    "LoginResult",
    "NetworkFailureError",
    "NotAuthenticatedError",
    "OrderConfirmation",
    "OrderResult",
    "OrderResultKind",
    "OrderSubmissionPipeline",
    "RequestTimeoutError",
    "SessionExpiredError",
    "SessionManager",
    "SessionState",
    "SessionStatus",
    "SubmissionHandle",
    "SyncKind",
    "SyncResult",
    "SystemClock",
    "TickScheduler",
    "UnauthorizedError",
    "UpstreamRejectedError",
    "UserAction",
    "UserFacingError",
    "build_order_submission",
    "expand_line_items",
    "load_config",
    "new_idempotency_key",
    "to_user_facing_error",
]
