from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from ..error_mapper import map_error, parse_body, response_trace_id
from ..idempotency import idempotency_headers

if TYPE_CHECKING:
    from ..session import SessionManager

CHECKOUT_PATH = "/api/checkout"
PRODUCT_SYNC_PATH = "/api/products/sync"
ORDER_SYNC_PATH = "/api/products/sync-orders"


@dataclass(frozen=True)
class CommerceResponse:
    status_code: int
    payload: Any | None
    text: str


@dataclass
class CommerceClient:
    session: SessionManager

    async def submit_order(
        self,
        payload: dict[str, Any],
        *,
        idempotency_key: str | None = None,
        timeout: float | None = None,
    ) -> CommerceResponse:
        headers = idempotency_headers(idempotency_key) if idempotency_key else None
        response = await self.session.authenticated_request(
            "POST",
            CHECKOUT_PATH,
            json_body=payload,
            headers=headers,
            timeout=timeout,
        )
        return _interpret(response)

    async def run_sync(self, path: str, *, timeout: float | None = None) -> CommerceResponse:
        response = await self.session.authenticated_request("POST", path, timeout=timeout)
        return _interpret(response)


def _interpret(response: httpx.Response) -> CommerceResponse:
    data, text = parse_body(response)
    if not response.is_success:
        raise map_error(response.status_code, data, text, response_trace_id(response))
    return CommerceResponse(status_code=response.status_code, payload=data, text=text)
