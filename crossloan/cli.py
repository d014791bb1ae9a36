"""Command-line interface for the cross-chain loan coordinator."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation

from .config import load_config
from .errors import CrossLoanError, TransactionPendingUnconfirmed
from .logging_setup import configure_logging
from .models import ChainRole
from .services import Coordinator

logger = logging.getLogger(__name__)


def _decimal(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from None
    if amount <= 0:
        raise argparse.ArgumentTypeError("amount must be positive")
    return amount


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="crossloan",
        description="Cross-chain collateralized loan coordinator",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    roles = [r.value for r in ChainRole]

    status_parser = sub.add_parser("status", help="Show balances and loan state")
    status_parser.add_argument(
        "--chain",
        choices=roles,
        default=ChainRole.ORIGIN.value,
        help="Which side of the loan to show (default: origin)",
    )

    sub.add_parser("prices", help="Read MATIC/USD and ETH/USD from the origin contract")
    sub.add_parser("scan", help="List overdue loans on the destination chain")

    history_parser = sub.add_parser("history", help="Show the local transaction ledger")
    history_parser.add_argument("--chain", choices=roles, default=None)

    request_parser = sub.add_parser("request", help="Request a loan on the origin chain")
    request_parser.add_argument("amount", type=_decimal, help="Loan amount in MATIC")
    request_parser.add_argument("duration", type=_positive_int, help="Duration in days")

    sub.add_parser("deposit", help="Deposit the required ETH collateral")

    repay_parser = sub.add_parser("repay", help="Repay part of a destination loan")
    repay_parser.add_argument("amount", type=_decimal, help="Repayment in MATIC")

    liquidate_parser = sub.add_parser("liquidate", help="Liquidate an overdue borrower")
    liquidate_parser.add_argument("borrower", help="Borrower address")

    confirm_parser = sub.add_parser("confirm", help="Re-check a pending transaction")
    confirm_parser.add_argument("tx_hash", help="Transaction hash")

    watch_parser = sub.add_parser("watch", help="Poll prices and scan continuously")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=_positive_int,
        default=None,
        help="Liquidation scan interval in seconds (overrides config)",
    )

    return parser


async def _dispatch(coordinator: Coordinator, args: argparse.Namespace) -> str | None:
    command = args.command
    if command == "status":
        return await coordinator.status(ChainRole(args.chain))
    if command == "prices":
        return await coordinator.price_report()
    if command == "scan":
        return await coordinator.scan()
    if command == "history":
        return coordinator.history(args.chain)
    if command == "request":
        return await coordinator.request(args.amount, args.duration)
    if command == "deposit":
        return await coordinator.deposit()
    if command == "repay":
        return await coordinator.repay(args.amount)
    if command == "liquidate":
        return await coordinator.liquidate(args.borrower)
    if command == "confirm":
        return await coordinator.confirm(args.tx_hash)
    if command == "watch":
        await coordinator.run_continuous(args.interval)
        return None
    raise ValueError(f"Unknown command: {command}")


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    coordinator = Coordinator(config)

    try:
        output = await _dispatch(coordinator, args)
    except TransactionPendingUnconfirmed as e:
        print(f"Transaction {e.tx_hash} is pending; run 'crossloan confirm {e.tx_hash}' later")
        return 2
    except (CrossLoanError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        return 1
    finally:
        await coordinator.close()

    if output:
        print(output)
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        sys.exit(130)
