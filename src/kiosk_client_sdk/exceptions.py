from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None = None
    trace_id: str | None = None
    status_code: int = 0
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class InvalidCredentialsError(ApiError):
    """The identity backend rejected the identifier/secret pair."""


class NetworkFailureError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class SessionExpiredError(ApiError):
    """A refresh was attempted and failed; the user must log in again."""


class NotAuthenticatedError(SessionExpiredError):
    """No usable credential is held by the session manager."""


class UnauthorizedError(ApiError):
    pass


class UpstreamRejectedError(ApiError):
    """The commerce backend answered with a 4xx/5xx business error."""


class RequestTimeoutError(ApiError):
    """A local deadline passed; the upstream outcome is unknown."""
