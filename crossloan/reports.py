"""Plain-text rendering of loan state, risk reports and ledger history."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from eth_utils import from_wei

from .config import AppConfig
from .models import (
    ChainRole,
    LedgerEntry,
    LoanSnapshot,
    PriceSnapshot,
    RepaymentView,
    RiskPosition,
)


def format_address(address: str) -> str:
    if len(address) > 12:
        return f"{address[:6]}...{address[-4:]}"
    return address


def format_units(amount: int | None) -> str:
    if amount is None:
        return "n/a"
    return f"{Decimal(from_wei(amount, 'ether')):.4f}"


def format_timestamp(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def raw_value(value: object) -> str:
    return getattr(value, "value", value)  # type: ignore[return-value]


def format_origin_status(
    snapshot: LoanSnapshot | None,
    native_balance: int | None,
    workflow_state: str,
    native_token: str = "ETH",
) -> str:
    lines = [f"Balance: {format_units(native_balance)} {native_token}"]
    if snapshot is None:
        lines.append("Loan: unavailable")
        return "\n".join(lines)

    record = snapshot.record
    status = snapshot.status
    if status.is_fully_collateralized:
        collateral = "fully collateralized"
    elif status.required_collateral:
        collateral = f"{format_units(status.required_collateral)} {native_token} required"
    else:
        collateral = "not collateralized"
    lines += [
        f"Borrower: {snapshot.borrower}",
        f"Loan amount: {format_units(record.loan_amount)} MATIC"
        + (
            f" (requested {format_units(snapshot.requested_amount)})"
            if snapshot.requested_amount != record.loan_amount
            else ""
        ),
        f"Collateral: {format_units(record.collateral_amount)} {native_token} · {collateral}",
        f"Interest rate: {Decimal(record.interest_rate_bps) / 100:.2f}%"
        f" · Credit score: {record.credit_score}"
        f" · Duration: {record.duration_days} days",
        f"Active: {'yes' if record.active else 'no'} · Workflow: {workflow_state}",
    ]
    return "\n".join(lines)


def format_repayment(
    view: RepaymentView | None,
    native_balance: int | None,
    token_balance: int | None,
    native_token: str = "ETH",
) -> str:
    lines = [
        f"Balance: {format_units(native_balance)} {native_token}"
        f" · {format_units(token_balance)} MATIC",
    ]
    if view is None:
        lines.append("No active loan")
        return "\n".join(lines)
    lines += [
        f"Loan: {format_units(view.amount)} MATIC · {view.status}",
        f"Repaid: {format_units(view.repaid_amount)} MATIC ({view.progress_pct}%)",
        f"Total due: {format_units(view.total_due)} MATIC",
        f"Interest: {view.interest_rate_pct:.2f}%",
        f"Due: {format_timestamp(view.due_timestamp)} UTC",
    ]
    return "\n".join(lines)


def format_prices(snapshot: PriceSnapshot | None, stale: bool) -> str:
    if snapshot is None:
        return "Prices unavailable"
    text = f"MATIC ${snapshot.matic_usd:,.4f} · ETH ${snapshot.eth_usd:,.2f}"
    if snapshot.error:
        text += f" (last poll failed: {snapshot.error})"
    elif stale:
        text += " (stale)"
    return text


def format_risk_positions(positions: list[RiskPosition]) -> str:
    if not positions:
        return "No overdue loans found."
    blocks = []
    for p in positions:
        blocks.append(
            f"{format_address(p.borrower)}  {p.borrower}\n"
            f"  Loan: {format_units(p.loan_amount)} MATIC"
            f" · Repaid: {format_units(p.repaid_amount)} MATIC"
            f" · Total due: {format_units(p.total_due)} MATIC\n"
            f"  Collateral: {format_units(p.collateral_amount)} ETH"
            f" · Due: {format_timestamp(p.due_timestamp)} UTC"
            f"{' · OVERDUE' if p.overdue else ''}"
        )
    return "\n\n".join(blocks)


def explorer_link(config: AppConfig, entry: LedgerEntry) -> str:
    try:
        chain = config.chain_for_role(ChainRole(raw_value(entry.chain)))
    except (KeyError, ValueError):
        return ""
    if not chain.explorer_tx_url:
        return ""
    return f"{chain.explorer_tx_url.rstrip('/')}/{entry.tx_hash}"


def format_history(config: AppConfig, entries: list[LedgerEntry]) -> str:
    if not entries:
        return "No transactions recorded."
    lines = []
    for e in entries:
        link = explorer_link(config, e)
        lines.append(
            f"{format_timestamp(e.timestamp)}  {raw_value(e.chain):<11} {raw_value(e.type):<18}"
            f" {e.amount:>12} {raw_value(e.token):<5} {raw_value(e.status):<9}"
            f" {link or e.tx_hash}"
        )
    return "\n".join(lines)
