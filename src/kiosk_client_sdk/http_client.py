from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from .config import KioskConfig
from .exceptions import NetworkFailureError, RequestTimeoutError

logger = logging.getLogger(__name__)

KIOSK_HEADER = "X-Kiosk-ID"
MERCHANT_HEADER = "X-Merchant-ID"


@dataclass
class LastOperation:
    method: str
    path: str
    duration_ms: int
    result: str
    status_code: int | None


class HttpClient:
    """Thin async transport: attaches kiosk headers and maps transport failures.

    Responses are returned as-is, whatever their status; interpretation is left
    to the caller so the session layer can inspect 401s.
    """

    def __init__(
        self,
        config: KioskConfig,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=httpx.Timeout(config.read_timeout_seconds, connect=config.connect_timeout_seconds),
            limits=httpx.Limits(max_connections=config.max_connections),
            verify=config.verify_ssl,
            transport=transport,
        )
        self.last_operation: LastOperation | None = None

    def _default_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.kiosk_id:
            headers[KIOSK_HEADER] = self.config.kiosk_id
        if self.config.merchant_id:
            headers[MERCHANT_HEADER] = self.config.merchant_id
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        request_headers = self._default_headers()
        if headers:
            request_headers.update(headers)
        normalized_method = method.upper()
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = httpx.Timeout(timeout, connect=self.config.connect_timeout_seconds)

        started = time.monotonic()
        try:
            response = await self._client.request(
                normalized_method,
                url,
                headers=request_headers,
                json=json_body,
                params=params,
                **extra,
            )
        except httpx.TimeoutException as exc:
            self._record(normalized_method, url, started, "timeout", None)
            raise RequestTimeoutError(
                code="TIMEOUT",
                message=str(exc) or "Request timed out",
                details={"type": type(exc).__name__},
                status_code=0,
            ) from exc
        except httpx.TransportError as exc:
            self._record(normalized_method, url, started, "network_error", None)
            raise NetworkFailureError(
                code="NETWORK_ERROR",
                message=str(exc) or "Network error",
                details={"type": type(exc).__name__},
                status_code=0,
            ) from exc
        except httpx.HTTPError as exc:
            # undecodable bodies, redirect loops and similar client-side failures
            self._record(normalized_method, url, started, "network_error", None)
            raise NetworkFailureError(
                code="HTTP_CLIENT_ERROR",
                message=str(exc) or "Request failed",
                details={"type": type(exc).__name__},
                status_code=0,
            ) from exc

        result = "success" if response.is_success else "error"
        self._record(normalized_method, url, started, result, response.status_code)
        return response

    def _record(self, method: str, path: str, started: float, result: str, status_code: int | None) -> None:
        self.last_operation = LastOperation(
            method=method,
            path=path,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            status_code=status_code,
        )
        logger.debug(
            "http_request",
            extra={"method": method, "path": path, "result": result, "status_code": status_code},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
