from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

import httpx

from .clients.identity import IdentityClient
from .clock import Clock, SystemClock
from .config import DEFAULT_SAFETY_MARGIN_SECONDS
from .credential_store import CredentialStore
from .exceptions import (
    ApiError,
    InvalidCredentialsError,
    NetworkFailureError,
    NotAuthenticatedError,
    RequestTimeoutError,
    SessionExpiredError,
)
from .http_client import HttpClient
from .models import Credential, Identity, LoginResult, SessionState, SessionStatus

logger = logging.getLogger(__name__)


def _as_network_failure(exc: RequestTimeoutError) -> NetworkFailureError:
    return NetworkFailureError(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
    )


class SessionManager:
    """Owns the kiosk credential and keeps it usable.

    Every read of the access token goes through :meth:`get_valid_token`, which
    refreshes once the token is inside the safety margin. Refreshes are
    coalesced: while one is in flight every other caller awaits the same task,
    so a single-use refresh token is never presented twice.

    The manager is the only reader and writer of the credential store.
    """

    def __init__(
        self,
        identity_client: IdentityClient,
        http: HttpClient,
        store: CredentialStore,
        *,
        clock: Clock | None = None,
        safety_margin: timedelta = timedelta(seconds=DEFAULT_SAFETY_MARGIN_SECONDS),
    ) -> None:
        self._identity_client = identity_client
        self._http = http
        self._store = store
        self._clock = clock or SystemClock()
        self._safety_margin = safety_margin
        self._credential: Credential | None = None
        self._identity: Identity | None = None
        self._refresh_task: asyncio.Task[Credential | None] | None = None
        self._epoch = 0
        self.last_error: ApiError | None = None

    @property
    def state(self) -> SessionState:
        if self._refresh_task is not None and not self._refresh_task.done():
            return SessionState.REFRESHING
        if self._credential is not None:
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def status(self) -> SessionStatus:
        credential = self._credential
        return SessionStatus(
            state=self.state,
            authenticated=credential is not None and not self._is_stale(credential),
            identity=self._identity,
            expires_at=credential.expires_at if credential else None,
        )

    def _is_stale(self, credential: Credential) -> bool:
        return credential.is_stale(self._clock.now(), self._safety_margin)

    async def initialize(self) -> bool:
        """Rehydrate from the store; refresh once if the stored token is stale."""
        try:
            loaded = self._store.load()
        except Exception:
            logger.exception("session_rehydrate_failed")
            return False
        if loaded is None:
            logger.info("session_rehydrate_empty")
            return False
        self._credential, self._identity = loaded
        if not self._is_stale(self._credential):
            logger.info("session_rehydrated")
            return True
        logger.info("session_rehydrated_stale")
        try:
            return await self._refresh_coalesced() is not None
        except Exception:
            logger.exception("session_rehydrate_refresh_failed")
            self._clear()
            return False

    async def login(self, identifier: str, secret: str) -> LoginResult:
        logger.info("login_attempt")
        try:
            grant = await self._identity_client.login(identifier, secret)
        except RequestTimeoutError as exc:
            error = _as_network_failure(exc)
            logger.warning("login_failure", extra={"code": error.code, "status_code": error.status_code})
            self.last_error = error
            return LoginResult(success=False, error=error)
        except (InvalidCredentialsError, NetworkFailureError) as exc:
            logger.warning("login_failure", extra={"code": exc.code, "status_code": exc.status_code})
            self.last_error = exc
            return LoginResult(success=False, error=exc)

        self._epoch += 1
        credential = grant.to_credential(self._clock.now())
        identity = grant.to_identity(identifier)
        self._persist(credential, identity)
        self._credential = credential
        self._identity = identity
        self.last_error = None
        logger.info("login_success", extra={"identity_id": identity.id if identity else None})
        return LoginResult(success=True, identity=identity)

    def logout(self) -> None:
        self._epoch += 1
        self._clear()
        logger.info("logout")

    async def get_valid_token(self) -> str | None:
        credential = self._credential
        if credential is None:
            return None
        if not self._is_stale(credential):
            return credential.access_token
        refreshed = await self._refresh_coalesced()
        return refreshed.access_token if refreshed else None

    async def authenticated_request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send a request with a bearer token, retrying exactly once after a 401.

        A second 401 is handed back to the caller unchanged.
        """
        token = await self.get_valid_token()
        if token is None:
            raise NotAuthenticatedError(
                code="NOT_AUTHENTICATED",
                message="Not authenticated",
                status_code=401,
            )
        response = await self._send(token, method, url, headers, json_body, params, timeout)
        if response.status_code != 401:
            return response

        logger.info("request_unauthorized_refreshing", extra={"path": url})
        retry_token = await self._token_after_unauthorized(token)
        if retry_token is None:
            return response
        return await self._send(retry_token, method, url, headers, json_body, params, timeout)

    async def _send(
        self,
        token: str,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        json_body: Any | None,
        params: dict[str, Any] | None,
        timeout: float | None,
    ) -> httpx.Response:
        merged = {"Content-Type": "application/json", **(headers or {})}
        merged["Authorization"] = f"Bearer {token}"
        return await self._http.request(
            method,
            url,
            headers=merged,
            json_body=json_body,
            params=params,
            timeout=timeout,
        )

    async def _token_after_unauthorized(self, rejected_token: str) -> str | None:
        current = self._credential
        if current is None:
            return None
        if current.access_token != rejected_token:
            # Another caller already rotated the credential.
            return await self.get_valid_token()
        refreshed = await self._refresh_coalesced()
        return refreshed.access_token if refreshed else None

    async def _refresh_coalesced(self) -> Credential | None:
        if self._refresh_task is None or self._refresh_task.done():
            loop = asyncio.get_running_loop()
            self._refresh_task = loop.create_task(self._perform_refresh(self._epoch))
        return await asyncio.shield(self._refresh_task)

    async def _perform_refresh(self, epoch: int) -> Credential | None:
        credential = self._credential
        if credential is None or not credential.renewable:
            self.last_error = SessionExpiredError(
                code="NO_REFRESH_TOKEN",
                message="Session cannot be renewed; please log in again",
                status_code=401,
            )
            logger.info("token_refresh_unavailable")
            self._clear()
            return None

        logger.info("token_refresh_started")
        try:
            grant = await self._identity_client.refresh(credential.refresh_token)
        except (NetworkFailureError, RequestTimeoutError) as exc:
            return self._refresh_failed(epoch, NetworkFailureError(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                status_code=exc.status_code,
            ))
        except ApiError as exc:
            return self._refresh_failed(epoch, SessionExpiredError(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                status_code=exc.status_code,
                raw_payload=exc.raw_payload,
            ))

        if epoch != self._epoch:
            logger.info("token_refresh_discarded")
            return self._credential

        refreshed = grant.to_credential(self._clock.now())
        if not refreshed.refresh_token:
            refreshed = refreshed.model_copy(update={"refresh_token": credential.refresh_token})
        self._persist(refreshed, self._identity)
        self._credential = refreshed
        self.last_error = None
        logger.info("token_refresh_succeeded")
        return refreshed

    def _refresh_failed(self, epoch: int, error: ApiError) -> Credential | None:
        logger.warning(
            "token_refresh_failed",
            extra={"code": error.code, "status_code": error.status_code},
        )
        if epoch != self._epoch:
            return self._credential
        self.last_error = error
        self._clear()
        return None

    def _persist(self, credential: Credential, identity: Identity | None) -> None:
        try:
            self._store.save(credential, identity)
        except OSError:
            logger.exception("credential_persist_failed")

    def _clear(self) -> None:
        self._credential = None
        self._identity = None
        try:
            self._store.clear()
        except OSError:
            logger.exception("credential_clear_failed")
