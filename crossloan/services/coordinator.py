"""Wires chain clients, bindings, session, ledger and services together."""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from .. import reports
from ..chains.evm import EvmClient
from ..config import AppConfig
from ..errors import CrossLoanError, WorkflowStateError
from ..interfaces.chain import ChainClient
from ..interfaces.wallet import Wallet
from ..ledger import TransactionLedger
from ..models import ChainRole, LedgerEntry
from ..registry import ContractBindingRegistry
from ..scheduler import Scheduler
from ..session import Session, SessionManager
from ..wallets import LocalWallet
from .liquidation import LiquidationScanner, Liquidator
from .loan_state import LoanStateSynchronizer
from .price_feed import PriceFeedPoller
from .repayment import RepaymentService
from .transactions import TransactionSubmitter
from .workflow import LoanRequestWorkflow

logger = logging.getLogger(__name__)


class Coordinator:
    """One account's view of a loan spread over an origin and a destination chain."""

    def __init__(
        self,
        config: AppConfig,
        wallet: Wallet | None = None,
        ledger: TransactionLedger | None = None,
        clients: dict[int, ChainClient] | None = None,
    ) -> None:
        self._config = config

        # Build chain clients
        if clients is None:
            clients = {c.chain_id: EvmClient(c) for c in config.chains.values()}
        self._clients = clients

        if wallet is None and config.account.private_key:
            wallet = LocalWallet(
                config.account.private_key, config.transactions.gas_multiplier
            )
        self.wallet = wallet
        self.account = config.account.address or (wallet.address if wallet else "")

        self.registry = ContractBindingRegistry(config, clients)
        self.sessions = SessionManager(self.registry)
        self.scheduler = Scheduler()
        self.ledger = ledger or TransactionLedger(config.ledger.path)

        self.synchronizer = LoanStateSynchronizer()
        self.prices = PriceFeedPoller(
            self.sessions, config.prices.poll_interval_seconds, config.prices.scale
        )
        origin_bindings = self.registry.bind(config.origin.chain_id)
        self.scanner = LiquidationScanner(
            from_block=config.scanner.from_block,
            max_block_range=config.scanner.max_block_range,
            cache_logs=config.scanner.cache_logs,
            origin=origin_bindings.origin if origin_bindings else None,
        )

        self.submitter = TransactionSubmitter(
            wallet,
            self.ledger,
            receipt_timeout=config.transactions.receipt_timeout_seconds,
            receipt_poll=config.transactions.receipt_poll_seconds,
        )
        self.workflow = LoanRequestWorkflow(
            self.synchronizer, self.submitter, config.destination.chain_id
        )
        self.repayments = RepaymentService(self.submitter)
        self.liquidator = Liquidator(self.submitter)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def use_chain(self, role: ChainRole) -> Session:
        chain = self._config.chain_for_role(role)
        return await self.sessions.switch(chain_id=chain.chain_id, account=self.account)

    def _side_session(self, role: ChainRole) -> Session:
        """A session for the other chain that does not replace the current one."""
        chain = self._config.chain_for_role(role)
        return Session(
            chain_id=chain.chain_id,
            account=self.account,
            connection=self.registry.client_for(chain.chain_id),
            bindings=self.registry.bind(chain.chain_id),
            generation=self.sessions.current.generation,
        )

    async def _balance(self, session: Session) -> int | None:
        if session.connection is None or not session.account:
            return None
        try:
            return await session.connection.get_balance(session.account)
        except CrossLoanError as e:
            logger.error("Error fetching balance: %s", e)
            return None

    async def _token_balance(self, session: Session) -> int | None:
        bindings = session.bindings
        if bindings is None or bindings.token is None or not session.account:
            return None
        try:
            return await bindings.token.balance_of(session.account)
        except CrossLoanError as e:
            logger.error("Error fetching MATIC balance: %s", e)
            return None

    # ------------------------------------------------------------------
    # Read commands
    # ------------------------------------------------------------------

    async def status(self, role: ChainRole = ChainRole.ORIGIN) -> str:
        session = await self.use_chain(role)
        chain = self._config.chain_for_role(role)
        header = f"{chain.name} ({role.value}, chain {chain.chain_id})"

        if role == ChainRole.ORIGIN:
            await self.workflow.refresh(session)
            body = reports.format_origin_status(
                self.synchronizer.snapshot,
                await self._balance(session),
                self.workflow.state.value,
                chain.native_token,
            )
        else:
            body = reports.format_repayment(
                await self.repayments.load(session),
                await self._balance(session),
                await self._token_balance(session),
                chain.native_token,
            )
        return f"{header}\n\n{body}"

    async def price_report(self) -> str:
        session = await self.use_chain(ChainRole.ORIGIN)
        snapshot = await self.prices.poll_once(session)
        return reports.format_prices(snapshot, self.prices.is_stale())

    async def scan(self) -> str:
        session = await self.use_chain(ChainRole.DESTINATION)
        positions = await self.scanner.scan(session)
        return f"At-risk loans (overdue)\n\n{reports.format_risk_positions(positions)}"

    def history(self, chain: str | None = None) -> str:
        entries = self.ledger.list()
        if chain:
            entries = [e for e in entries if reports.raw_value(e.chain) == chain]
        return reports.format_history(self._config, entries)

    # ------------------------------------------------------------------
    # Write commands
    # ------------------------------------------------------------------

    def _describe(self, entry: LedgerEntry) -> str:
        link = reports.explorer_link(self._config, entry)
        return (
            f"{reports.raw_value(entry.type)} {entry.amount} {reports.raw_value(entry.token)}:"
            f" {link or entry.tx_hash}"
        )

    async def request(self, amount: Decimal, duration_days: int) -> str:
        session = await self.use_chain(ChainRole.ORIGIN)
        await self.workflow.refresh(session)
        quote = await self.workflow.prepare(session, amount, duration_days)
        logger.info(
            "Requesting %s MATIC for %d days; collateral required: %s ETH",
            amount, duration_days, reports.format_units(quote.required_collateral),
        )
        entry = await self.workflow.request_loan(session, amount, duration_days)
        return (
            f"Loan requested: {self._describe(entry)}\n"
            f"Deposit {reports.format_units(self.workflow.required_collateral)} ETH"
            " collateral to activate it."
        )

    async def deposit(self) -> str:
        session = await self.use_chain(ChainRole.ORIGIN)
        await self.workflow.refresh(session)
        entry = await self.workflow.deposit_collateral(session)
        return f"Collateral deposited: {self._describe(entry)}"

    async def repay(self, amount: Decimal) -> str:
        session = await self.use_chain(ChainRole.DESTINATION)
        entry = await self.repayments.repay(session, amount)
        return f"Repaid: {self._describe(entry)}"

    async def liquidate(self, borrower: str) -> str:
        session = await self.use_chain(ChainRole.DESTINATION)
        entry = await self.liquidator.liquidate(session, borrower)
        return f"Liquidated {borrower}: {self._describe(entry)}"

    async def confirm(self, tx_hash: str) -> str:
        entry = self.ledger.find(tx_hash)
        if entry is None:
            raise WorkflowStateError(f"No ledger entry for {tx_hash}")
        try:
            role = ChainRole(reports.raw_value(entry.chain))
        except ValueError:
            raise WorkflowStateError(f"Unknown chain '{entry.chain}' for {tx_hash}") from None
        client = self.registry.client_for(self._config.chain_for_role(role).chain_id)
        if client is None:
            raise WorkflowStateError(f"No connection for the {role.value} chain")
        if await self.submitter.confirm(client, tx_hash):
            return f"{tx_hash} confirmed"
        return f"{tx_hash} not confirmed ({reports.raw_value(entry.status)})"

    # ------------------------------------------------------------------
    # Continuous mode
    # ------------------------------------------------------------------

    def _on_session_change(self, session: Session) -> None:
        if session.bindings is None:
            return
        if session.bindings.origin is not None:
            self.scheduler.spawn(self.synchronizer.sync(session), name="loan-sync")
        if session.bindings.destination is not None:
            self.scheduler.spawn(self.scanner.scan(session), name="liquidation-scan")

    def _on_ledger_change(self, entries: list[LedgerEntry]) -> None:
        pending = sum(1 for e in entries if reports.raw_value(e.status) == "pending")
        logger.info("Ledger updated: %d entries, %d pending", len(entries), pending)

    async def _scan_destination(self) -> None:
        await self.scanner.scan(self._side_session(ChainRole.DESTINATION))

    async def run_continuous(self, scan_interval: float | None = None) -> None:
        """Poll prices, watch the ledger and rescan for liquidations until cancelled."""
        interval = scan_interval or self._config.scanner.interval_seconds
        logger.info(
            "Starting continuous mode (prices every %.0fs, scan every %.0fs)",
            self.prices.interval, interval,
        )

        unsubscribe_session = self.sessions.subscribe(self._on_session_change)
        unsubscribe_ledger = self.ledger.subscribe(self._on_ledger_change)
        try:
            await self.use_chain(ChainRole.ORIGIN)
            self.prices.start(self.scheduler)
            self.ledger.watch(self.scheduler, self._config.ledger.watch_interval_seconds)
            self.scheduler.every(interval, self._scan_destination, name="liquidation-scan")
            while True:
                await asyncio.sleep(3600)
        finally:
            unsubscribe_session()
            unsubscribe_ledger()
            await self.close()

    async def close(self) -> None:
        await self.scheduler.shutdown()
        self.sessions.close()
