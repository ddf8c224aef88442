from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping, Sequence

import httpx

from .clients import CommerceClient, IdentityClient
from .clock import Clock, SystemClock
from .config import KioskConfig, load_config
from .credential_store import CredentialStore, FileCredentialStore
from .http_client import HttpClient
from .idle_monitor import AsyncioTickScheduler, IdleMonitor, TickScheduler
from .models import LoginResult, SessionStatus
from .models_orders import CartLine, OrderResult, SyncKind, SyncResult
from .order_pipeline import OrderSubmissionPipeline, SubmissionHandle
from .session import SessionManager

logger = logging.getLogger(__name__)


class KioskCore:
    """What the kiosk screens talk to.

    Wires the session manager, idle monitor and order pipeline around one
    shared HTTP client. Everything is injectable for tests; :meth:`from_config`
    builds the production graph.
    """

    def __init__(
        self,
        config: KioskConfig,
        *,
        session: SessionManager,
        pipeline: OrderSubmissionPipeline,
        idle: IdleMonitor,
        http: HttpClient,
    ) -> None:
        self.config = config
        self.session = session
        self.pipeline = pipeline
        self.idle = idle
        self._http = http

    @classmethod
    def from_config(
        cls,
        config: KioskConfig | None = None,
        *,
        store: CredentialStore | None = None,
        clock: Clock | None = None,
        scheduler: TickScheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "KioskCore":
        config = config or load_config()
        clock = clock or SystemClock()
        http = HttpClient(config, transport=transport)
        identity_client = IdentityClient(http, config.auth_base_url, config.auth_api_key)
        session = SessionManager(
            identity_client,
            http,
            store or FileCredentialStore(app_name=config.app_name),
            clock=clock,
            safety_margin=timedelta(seconds=config.token_safety_margin_seconds),
        )
        pipeline = OrderSubmissionPipeline(
            CommerceClient(session),
            checkout_timeout=config.checkout_timeout_seconds,
            sync_timeout=config.sync_timeout_seconds,
        )
        idle = IdleMonitor(
            clock,
            scheduler or AsyncioTickScheduler(),
            enabled=config.auto_reset_enabled,
            default_timeout_ms=config.idle_timeout_ms,
        )
        return cls(config, session=session, pipeline=pipeline, idle=idle, http=http)

    async def initialize(self) -> SessionStatus:
        await self.session.initialize()
        status = self.session.status()
        logger.info("kiosk_initialized", extra={"env": self.config.normalized_env, "state": status.state.value})
        return status

    async def login(self, identifier: str, secret: str) -> LoginResult:
        return await self.session.login(identifier, secret)

    def logout(self) -> None:
        self.idle.disarm()
        active = self.pipeline.active_order
        if active is not None:
            active.cancel()
        self.session.logout()

    def get_session_status(self) -> SessionStatus:
        return self.session.status()

    def start_order(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        *,
        timeout: float | None = None,
        idempotency_key: str | None = None,
    ) -> SubmissionHandle[OrderResult]:
        """Start a checkout, or join the one already in flight.

        While a checkout is pending, further calls return its handle and
        their cart is ignored; the result carries the first cart.
        """
        return self.pipeline.start_order(cart, timeout=timeout, idempotency_key=idempotency_key)

    async def submit_order(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        *,
        timeout: float | None = None,
        idempotency_key: str | None = None,
    ) -> OrderResult:
        return await self.pipeline.submit_order(cart, timeout=timeout, idempotency_key=idempotency_key)

    async def run_sync(self, kind: SyncKind | str, *, timeout: float | None = None) -> SyncResult:
        return await self.pipeline.run_sync(kind, timeout=timeout)

    async def aclose(self) -> None:
        self.idle.disarm()
        await self._http.aclose()

    async def __aenter__(self) -> "KioskCore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
