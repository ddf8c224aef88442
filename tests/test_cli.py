from __future__ import annotations

import argparse
import json
import logging

import pytest

from kiosk_client_sdk.cli import build_parser, main, parse_item


def test_parse_item() -> None:
    assert parse_item("ITEM1:3") == {"item_id": "ITEM1", "quantity": "3"}
    assert parse_item("ITEM2") == {"item_id": "ITEM2", "quantity": 1}
    with pytest.raises(argparse.ArgumentTypeError):
        parse_item(":2")


def test_parser_subcommands() -> None:
    parser = build_parser()
    args = parser.parse_args(["--log-json", "checkout", "--item", "A:2", "--item", "B", "--timeout", "30"])
    assert args.log_json is True
    assert args.item == [{"item_id": "A", "quantity": "2"}, {"item_id": "B", "quantity": 1}]
    assert args.timeout == 30

    sync_args = parser.parse_args(["sync", "orders"])
    assert sync_args.kind == "orders"
    with pytest.raises(SystemExit):
        parser.parse_args(["sync", "customers"])


def test_main_reports_missing_config(capsys: pytest.CaptureFixture[str]) -> None:
    try:
        with pytest.raises(SystemExit) as exc_info:
            main(["status"])
    finally:
        logger = logging.getLogger("kiosk_client_sdk")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)

    assert exc_info.value.code == 2
    output = json.loads(capsys.readouterr().out)
    assert output["error"] == "CONFIG_ERROR"
    assert "KIOSK_API_BASE_URL" in output["message"]
