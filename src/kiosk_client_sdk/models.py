from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ApiError

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class Credential(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str = ""
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def renewable(self) -> bool:
        return bool(self.refresh_token)

    def is_stale(self, now: datetime, safety_margin: timedelta) -> bool:
        return now >= self.expires_at - safety_margin


class Identity(BaseModel):
    id: str
    email: str
    display_name: str | None = None


class TokenGrant(BaseModel):
    """Identity backend answer to a password or refresh_token grant."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str = ""
    expires_at: float | None = None
    expires_in: float | None = None
    user: dict[str, Any] | None = None

    def to_credential(self, now: datetime) -> Credential:
        if self.expires_at is not None:
            expires = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        elif self.expires_in is not None:
            expires = now + timedelta(seconds=self.expires_in)
        else:
            expires = now + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)
        return Credential(access_token=self.access_token, refresh_token=self.refresh_token, expires_at=expires)

    def to_identity(self, fallback_email: str) -> Identity | None:
        if not self.user or not self.user.get("id"):
            return None
        metadata = self.user.get("user_metadata") or {}
        return Identity(
            id=str(self.user["id"]),
            email=str(self.user.get("email") or fallback_email),
            display_name=metadata.get("name") if isinstance(metadata, dict) else None,
        )


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class SessionStatus(BaseModel):
    state: SessionState
    authenticated: bool
    identity: Identity | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class LoginResult:
    success: bool
    identity: Identity | None = None
    error: ApiError | None = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


class StoredAccess(BaseModel):
    access_token: str
    expires_at: datetime


class StoredRefresh(BaseModel):
    refresh_token: str = Field(min_length=1)
