from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from kiosk_client_sdk.clients import IdentityClient
from kiosk_client_sdk.config import KioskConfig
from kiosk_client_sdk.exceptions import InvalidCredentialsError, NetworkFailureError, RequestTimeoutError
from kiosk_client_sdk.http_client import HttpClient
from kiosk_client_sdk.models import TokenGrant
from kiosk_helpers import TOKEN_PATH, json_response, request_json, token_grant


def _client(config: KioskConfig, handler) -> IdentityClient:
    http = HttpClient(config, transport=httpx.MockTransport(handler))
    return IdentityClient(http, config.auth_base_url, config.auth_api_key)


@pytest.mark.asyncio
async def test_login_uses_password_grant(kiosk_config: KioskConfig) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return json_response(200, token_grant("access-1"))

    grant = await _client(kiosk_config, handler).login("kiosk@example.com", "s3cret")

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == TOKEN_PATH
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["X-Kiosk-ID"] == "kiosk-7"
    assert request.headers["X-Merchant-ID"] == "merchant-1"
    assert request_json(request) == {"email": "kiosk@example.com", "password": "s3cret"}
    assert grant.access_token == "access-1"
    assert grant.refresh_token == "refresh-1"


@pytest.mark.asyncio
async def test_refresh_uses_refresh_grant(kiosk_config: KioskConfig) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return json_response(200, token_grant("access-2", "refresh-2"))

    grant = await _client(kiosk_config, handler).refresh("refresh-1")

    assert seen[0].url.params["grant_type"] == "refresh_token"
    assert request_json(seen[0]) == {"refresh_token": "refresh-1"}
    assert grant.refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_rejected_credentials_keep_backend_message(kiosk_config: KioskConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"})

    with pytest.raises(InvalidCredentialsError) as exc_info:
        await _client(kiosk_config, handler).login("kiosk@example.com", "wrong")
    assert exc_info.value.message == "Invalid login credentials"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_identity_outage_is_network_failure(kiosk_config: KioskConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    with pytest.raises(NetworkFailureError) as exc_info:
        await _client(kiosk_config, handler).login("kiosk@example.com", "s3cret")
    assert exc_info.value.code == "IDENTITY_UNAVAILABLE"


@pytest.mark.asyncio
async def test_identity_without_session_is_bad_response(kiosk_config: KioskConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response(200, {"user": {"id": "user-1"}})

    with pytest.raises(NetworkFailureError) as exc_info:
        await _client(kiosk_config, handler).login("kiosk@example.com", "s3cret")
    assert exc_info.value.code == "IDENTITY_BAD_RESPONSE"


@pytest.mark.asyncio
async def test_transport_failures_are_mapped(kiosk_config: KioskConfig) -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(NetworkFailureError) as network:
        await _client(kiosk_config, refused).login("kiosk@example.com", "s3cret")
    assert network.value.code == "NETWORK_ERROR"
    assert network.value.status_code == 0

    with pytest.raises(RequestTimeoutError):
        await _client(kiosk_config, slow).login("kiosk@example.com", "s3cret")


def test_token_grant_expiry_sources() -> None:
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    absolute = TokenGrant(access_token="a", expires_at=now.timestamp() + 120).to_credential(now)
    assert absolute.expires_at == now + timedelta(seconds=120)
    relative = TokenGrant(access_token="a", expires_in=60).to_credential(now)
    assert relative.expires_at == now + timedelta(seconds=60)
    fallback = TokenGrant(access_token="a").to_credential(now)
    assert fallback.expires_at == now + timedelta(hours=1)
    assert fallback.renewable is False


def test_token_grant_identity() -> None:
    grant = TokenGrant.model_validate(token_grant("a"))
    identity = grant.to_identity("fallback@example.com")
    assert identity is not None
    assert identity.id == "user-1"
    assert identity.display_name == "Front Kiosk"
    assert TokenGrant(access_token="a").to_identity("x@example.com") is None
