from __future__ import annotations

from dataclasses import dataclass

from pydantic import ValidationError

from ..error_mapper import map_identity_error, parse_body
from ..exceptions import NetworkFailureError
from ..http_client import HttpClient
from ..models import TokenGrant


@dataclass
class IdentityClient:
    """Password and refresh-token grants against a GoTrue-style token endpoint."""

    http: HttpClient
    auth_base_url: str
    api_key: str | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    async def _grant(self, grant_type: str, payload: dict[str, str]) -> TokenGrant:
        response = await self.http.request(
            "POST",
            f"{self.auth_base_url.rstrip('/')}/token",
            params={"grant_type": grant_type},
            json_body=payload,
            headers=self._headers(),
        )
        data, text = parse_body(response)
        if not response.is_success:
            raise map_identity_error(response.status_code, data, text)
        try:
            return TokenGrant.model_validate(data)
        except ValidationError as exc:
            raise NetworkFailureError(
                code="IDENTITY_BAD_RESPONSE",
                message="Identity backend returned no session",
                details=str(exc),
                status_code=response.status_code,
                raw_payload=text,
            ) from exc

    async def login(self, identifier: str, secret: str) -> TokenGrant:
        return await self._grant("password", {"email": identifier, "password": secret})

    async def refresh(self, refresh_token: str) -> TokenGrant:
        return await self._grant("refresh_token", {"refresh_token": refresh_token})
