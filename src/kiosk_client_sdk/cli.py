from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .config import ConfigError, load_config
from .kiosk import KioskCore
from .logging_setup import configure_logging
from .models_orders import SyncKind
from .ui_errors import to_user_facing_error

Command = Callable[[KioskCore, argparse.Namespace], Awaitable[int]]


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def parse_item(value: str) -> dict[str, Any]:
    item_id, sep, quantity = value.partition(":")
    if not item_id.strip():
        raise argparse.ArgumentTypeError(f"expected ID[:QTY], got {value!r}")
    return {"item_id": item_id.strip(), "quantity": quantity if sep else 1}


async def cmd_status(core: KioskCore, args: argparse.Namespace) -> int:
    _print(core.get_session_status().model_dump(mode="json"))
    return 0


async def cmd_login(core: KioskCore, args: argparse.Namespace) -> int:
    result = await core.login(args.email, args.password)
    if not result.success:
        _print({"error": result.error.code if result.error else None, "message": result.message})
        return 1
    _print({"identity": result.identity.model_dump() if result.identity else None})
    return 0


async def cmd_logout(core: KioskCore, args: argparse.Namespace) -> int:
    core.logout()
    _print({"state": core.get_session_status().state.value})
    return 0


async def cmd_checkout(core: KioskCore, args: argparse.Namespace) -> int:
    result = await core.submit_order(args.item, timeout=args.timeout, idempotency_key=args.idempotency_key)
    payload: dict[str, Any] = {
        "kind": result.kind.value,
        "message": result.message,
        "status_code": result.status_code,
        "idempotency_key": result.idempotency_key,
    }
    if result.confirmation is not None:
        payload["order"] = result.confirmation.model_dump(mode="json")
    if result.warning:
        payload["warning"] = result.warning
    error = to_user_facing_error(result)
    if error is not None:
        payload["action"] = error.action.value
    _print(payload)
    return 0 if result.ok else 1


async def cmd_sync(core: KioskCore, args: argparse.Namespace) -> int:
    result = await core.run_sync(args.kind, timeout=args.timeout)
    payload: dict[str, Any] = {
        "sync": result.sync_kind.value,
        "kind": result.kind.value,
        "message": result.message,
        "status_code": result.status_code,
    }
    if result.sync_kind is SyncKind.ORDERS:
        payload["marked_for_delete"] = result.marked_for_delete
    _print(payload)
    return 0 if result.ok else 1


async def _run(command: Command, args: argparse.Namespace) -> int:
    core = KioskCore.from_config(load_config(args.env_file))
    try:
        await core.initialize()
        return await command(core, args)
    finally:
        await core.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kiosk-client", description="Kiosk client operator CLI")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--log-json", action="store_true", help="emit JSON-lines logs")
    parser.add_argument("--log-level", default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status")
    status_parser.set_defaults(func=cmd_status)

    login_parser = subparsers.add_parser("login")
    login_parser.add_argument("--email", required=True)
    login_parser.add_argument("--password", required=True)
    login_parser.set_defaults(func=cmd_login)

    logout_parser = subparsers.add_parser("logout")
    logout_parser.set_defaults(func=cmd_logout)

    checkout_parser = subparsers.add_parser("checkout")
    checkout_parser.add_argument("--item", action="append", type=parse_item, required=True, metavar="ID:QTY")
    checkout_parser.add_argument("--timeout", type=float, default=None)
    checkout_parser.add_argument("--idempotency-key", default=None)
    checkout_parser.set_defaults(func=cmd_checkout)

    sync_parser = subparsers.add_parser("sync")
    sync_parser.add_argument("kind", choices=[kind.value for kind in SyncKind])
    sync_parser.add_argument("--timeout", type=float, default=None)
    sync_parser.set_defaults(func=cmd_sync)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(getattr(logging, str(args.log_level).upper(), logging.WARNING), json_lines=args.log_json)
    try:
        code = asyncio.run(_run(args.func, args))
    except ConfigError as exc:
        _print({"error": "CONFIG_ERROR", "message": str(exc)})
        raise SystemExit(2) from exc
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
