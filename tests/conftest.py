from __future__ import annotations

import os
from datetime import timedelta
from typing import Any, Awaitable, Callable

import httpx
import pytest

from kiosk_client_sdk.clients import CommerceClient, IdentityClient
from kiosk_client_sdk.config import KioskConfig
from kiosk_client_sdk.credential_store import CredentialStore, InMemoryCredentialStore
from kiosk_client_sdk.http_client import HttpClient
from kiosk_client_sdk.models import Credential
from kiosk_client_sdk.order_pipeline import OrderSubmissionPipeline
from kiosk_client_sdk.session import SessionManager
from kiosk_helpers import FakeClock, ManualScheduler, make_config

Handler = Callable[[httpx.Request], Any]


@pytest.fixture(autouse=True)
def clean_kiosk_env(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.startswith("KIOSK_"):
            monkeypatch.delenv(key)
    yield
    # .env files loaded during a test write straight to os.environ
    for key in list(os.environ):
        if key.startswith("KIOSK_"):
            os.environ.pop(key, None)


@pytest.fixture
def kiosk_config() -> KioskConfig:
    return make_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def fresh_credential(clock: FakeClock) -> Credential:
    return Credential(
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=clock.now() + timedelta(hours=1),
    )


@pytest.fixture
def make_session(kiosk_config: KioskConfig, clock: FakeClock) -> Callable[..., SessionManager]:
    def factory(
        handler: Handler,
        store: CredentialStore | None = None,
        *,
        margin_seconds: float = 300,
    ) -> SessionManager:
        http = HttpClient(kiosk_config, transport=httpx.MockTransport(handler))
        identity = IdentityClient(http, kiosk_config.auth_base_url, kiosk_config.auth_api_key)
        return SessionManager(
            identity,
            http,
            store if store is not None else InMemoryCredentialStore(),
            clock=clock,
            safety_margin=timedelta(seconds=margin_seconds),
        )

    return factory


@pytest.fixture
def make_pipeline(
    make_session: Callable[..., SessionManager],
    fresh_credential: Credential,
) -> Callable[..., Awaitable[OrderSubmissionPipeline]]:
    async def factory(handler: Handler, *, authenticated: bool = True, **kwargs: Any) -> OrderSubmissionPipeline:
        store = InMemoryCredentialStore(credential=fresh_credential if authenticated else None)
        session = make_session(handler, store)
        await session.initialize()
        return OrderSubmissionPipeline(CommerceClient(session), **kwargs)

    return factory
