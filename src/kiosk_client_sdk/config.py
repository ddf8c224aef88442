from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from dotenv import load_dotenv

DEFAULT_SAFETY_MARGIN_SECONDS = 300.0
DEFAULT_SYNC_TIMEOUT_SECONDS = 600.0
DEFAULT_IDLE_TIMEOUT_MINUTES = 2.0


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class KioskConfig:
    env_name: str
    api_base_url: str
    auth_base_url: str
    auth_api_key: str | None = None
    kiosk_id: str | None = None
    merchant_id: str | None = None
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 30.0
    checkout_timeout_seconds: float | None = None
    sync_timeout_seconds: float = DEFAULT_SYNC_TIMEOUT_SECONDS
    idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES
    auto_reset_enabled: bool = True
    token_safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS
    verify_ssl: bool = True
    max_connections: int = 10
    app_name: str = "kiosk-client"

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    @property
    def idle_timeout_ms(self) -> int:
        return int(self.idle_timeout_minutes * 60 * 1000)


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_optional_float(name: str) -> float | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    return _read_float(name, raw)


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _profiled(name: str, env_key: str) -> str:
    return (os.getenv(f"{name}_{env_key}") or "").strip() or (os.getenv(name) or "").strip()


def load_config(env_file: str | None = None) -> KioskConfig:
    """Load kiosk config from the environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("KIOSK_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = _profiled("KIOSK_API_BASE_URL", env_key)
    _require({"KIOSK_API_BASE_URL": api_base_url}, ["KIOSK_API_BASE_URL"])
    api_base_url = api_base_url.rstrip("/")

    auth_base_url = _profiled("KIOSK_AUTH_BASE_URL", env_key) or f"{api_base_url}/auth/v1"

    connect_timeout_seconds = _read_float("KIOSK_CONNECT_TIMEOUT_SECONDS", "5")
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid KIOSK_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float("KIOSK_READ_TIMEOUT_SECONDS", "30")
    _validate(
        read_timeout_seconds > 0,
        f"Invalid KIOSK_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    # Interactive checkout has no cap unless one is configured.
    checkout_timeout_seconds = _read_optional_float("KIOSK_CHECKOUT_TIMEOUT_SECONDS")
    _validate(
        checkout_timeout_seconds is None or checkout_timeout_seconds > 0,
        f"Invalid KIOSK_CHECKOUT_TIMEOUT_SECONDS: expected > 0, got {checkout_timeout_seconds}",
    )

    sync_timeout_seconds = _read_float("KIOSK_SYNC_TIMEOUT_SECONDS", str(DEFAULT_SYNC_TIMEOUT_SECONDS))
    _validate(
        sync_timeout_seconds > 0,
        f"Invalid KIOSK_SYNC_TIMEOUT_SECONDS: expected > 0, got {sync_timeout_seconds}",
    )

    idle_timeout_minutes = _read_float("KIOSK_IDLE_TIMEOUT_MINUTES", str(DEFAULT_IDLE_TIMEOUT_MINUTES))
    _validate(
        idle_timeout_minutes > 0,
        f"Invalid KIOSK_IDLE_TIMEOUT_MINUTES: expected > 0, got {idle_timeout_minutes}",
    )

    token_safety_margin_seconds = _read_float(
        "KIOSK_TOKEN_SAFETY_MARGIN_SECONDS", str(DEFAULT_SAFETY_MARGIN_SECONDS)
    )
    _validate(
        token_safety_margin_seconds >= 0,
        (
            "Invalid KIOSK_TOKEN_SAFETY_MARGIN_SECONDS: "
            f"expected >= 0, got {token_safety_margin_seconds}"
        ),
    )

    max_connections = _read_int("KIOSK_MAX_CONNECTIONS", "10")
    _validate(
        max_connections >= 1,
        f"Invalid KIOSK_MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    return KioskConfig(
        env_name=env_name,
        api_base_url=api_base_url,
        auth_base_url=auth_base_url.rstrip("/"),
        auth_api_key=(os.getenv("KIOSK_AUTH_API_KEY") or "").strip() or None,
        kiosk_id=(os.getenv("KIOSK_ID") or "").strip() or None,
        merchant_id=(os.getenv("KIOSK_MERCHANT_ID") or "").strip() or None,
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        checkout_timeout_seconds=checkout_timeout_seconds,
        sync_timeout_seconds=sync_timeout_seconds,
        idle_timeout_minutes=idle_timeout_minutes,
        auto_reset_enabled=_coerce_bool(os.getenv("KIOSK_AUTO_RESET_ENABLED"), True),
        token_safety_margin_seconds=token_safety_margin_seconds,
        verify_ssl=_coerce_bool(os.getenv("KIOSK_VERIFY_SSL"), True),
        max_connections=max_connections,
        app_name=(os.getenv("KIOSK_APP_NAME") or "kiosk-client").strip(),
    )
