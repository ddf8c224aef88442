from __future__ import annotations

import json
from typing import Any, Mapping

import httpx

from .exceptions import (
    ApiError,
    InvalidCredentialsError,
    NetworkFailureError,
    UnauthorizedError,
    UpstreamRejectedError,
)

_MESSAGE_KEYS = ("message", "error_description", "msg", "error")


def parse_body(response: httpx.Response) -> tuple[Any | None, str]:
    """Return ``(parsed_json_or_None, raw_text)`` without raising."""
    text = response.text
    if not text.strip():
        return None, text
    try:
        return json.loads(text), text
    except ValueError:
        return None, text


def extract_message(payload: Any, fallback_text: str, status_code: int) -> str:
    if isinstance(payload, Mapping):
        for key in _MESSAGE_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    if fallback_text.strip():
        return fallback_text.strip()
    return f"HTTP {status_code}"


def _trace_id(payload: Any, trace_id: str | None) -> str | None:
    if isinstance(payload, Mapping) and payload.get("trace_id") is not None:
        return str(payload["trace_id"])
    return trace_id


def _code(payload: Any, default: str) -> str:
    if isinstance(payload, Mapping):
        code = payload.get("code") or payload.get("error_code")
        if code:
            return str(code)
    return default


def map_error(
    status_code: int,
    payload: Any,
    text: str = "",
    trace_id: str | None = None,
) -> ApiError:
    message = extract_message(payload, text, status_code)
    mapped: type[ApiError]
    if status_code == 401:
        mapped = UnauthorizedError
        code = _code(payload, "UNAUTHORIZED")
    else:
        mapped = UpstreamRejectedError
        code = _code(payload, "HTTP_ERROR")
    return mapped(
        code=code,
        message=message,
        details=payload.get("details") if isinstance(payload, Mapping) else None,
        trace_id=_trace_id(payload, trace_id),
        status_code=status_code,
        raw_payload=payload if payload is not None else text,
    )


def map_identity_error(status_code: int, payload: Any, text: str = "") -> ApiError:
    message = extract_message(payload, text, status_code)
    if status_code in {400, 401, 403, 422}:
        return InvalidCredentialsError(
            code=_code(payload, "INVALID_CREDENTIALS"),
            message=message,
            status_code=status_code,
            raw_payload=payload if payload is not None else text,
        )
    return NetworkFailureError(
        code=_code(payload, "IDENTITY_UNAVAILABLE"),
        message=message,
        status_code=status_code,
        raw_payload=payload if payload is not None else text,
    )


def response_trace_id(response: httpx.Response) -> str | None:
    return response.headers.get("X-Trace-ID") or response.headers.get("X-Request-ID")
