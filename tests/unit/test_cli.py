"""Unit tests for CLI argument parsing."""
from __future__ import annotations

from decimal import Decimal

import pytest

from crossloan.cli import build_parser


class TestBuildParser:
    def test_status_defaults_to_origin(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"
        assert args.chain == "origin"

    def test_status_destination(self) -> None:
        args = build_parser().parse_args(["status", "--chain", "destination"])
        assert args.chain == "destination"

    def test_status_rejects_unknown_chain(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["status", "--chain", "mainnet"])

    def test_request_command(self) -> None:
        args = build_parser().parse_args(["request", "100.5", "30"])
        assert args.command == "request"
        assert args.amount == Decimal("100.5")
        assert args.duration == 30

    def test_request_rejects_non_positive_amount(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["request", "0", "30"])

    def test_request_rejects_bad_amount(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["request", "lots", "30"])

    def test_repay_command(self) -> None:
        args = build_parser().parse_args(["repay", "25"])
        assert args.amount == Decimal("25")

    def test_liquidate_command(self) -> None:
        args = build_parser().parse_args(["liquidate", "0xabc"])
        assert args.borrower == "0xabc"

    def test_confirm_command(self) -> None:
        args = build_parser().parse_args(["confirm", "0x" + "1" * 64])
        assert args.tx_hash == "0x" + "1" * 64

    def test_history_filter(self) -> None:
        args = build_parser().parse_args(["history", "--chain", "destination"])
        assert args.chain == "destination"
        assert build_parser().parse_args(["history"]).chain is None

    def test_watch_command_default_interval(self) -> None:
        args = build_parser().parse_args(["watch"])
        assert args.command == "watch"
        assert args.interval is None

    def test_watch_command_custom_interval(self) -> None:
        args = build_parser().parse_args(["watch", "60"])
        assert args.interval == 60

    def test_config_flag(self) -> None:
        args = build_parser().parse_args(["--config", "/tmp/c.yaml", "prices"])
        assert args.config == "/tmp/c.yaml"

    def test_log_level_flag(self) -> None:
        args = build_parser().parse_args(["--log-level", "DEBUG", "scan"])
        assert args.log_level == "DEBUG"

    def test_no_command(self) -> None:
        args = build_parser().parse_args([])
        assert args.command is None
