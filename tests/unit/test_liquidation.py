"""Unit tests for the liquidation scanner."""
from __future__ import annotations

import pytest

from conftest import (
    ACCOUNT,
    BORROWER_A,
    BORROWER_B,
    DESTINATION_ADDRESS,
    DESTINATION_CHAIN_ID,
    ETHER,
    ORIGIN_ADDRESS,
    ORIGIN_CHAIN_ID,
    FakeChain,
    destination_loan,
    loan_requested_log,
    origin_loan,
)
from crossloan.chains.evm.abi import DestinationAbi, OriginAbi
from crossloan.registry import ContractBindingRegistry
from crossloan.services.liquidation import (
    LiquidationScanner,
    decode_loan_requested,
    is_overdue,
)
from crossloan.session import Session

DUE = 1_700_000_000
DETAILS = "getLoanDetails(address)"


@pytest.fixture()
def session(registry: ContractBindingRegistry, destination_chain: FakeChain) -> Session:
    return Session(
        chain_id=DESTINATION_CHAIN_ID,
        account=ACCOUNT,
        connection=destination_chain,
        bindings=registry.bind(DESTINATION_CHAIN_ID),
        generation=1,
    )


def _loans(chain: FakeChain, loans: dict[str, tuple]) -> None:
    chain.answer(
        DESTINATION_ADDRESS,
        DestinationAbi.GET_LOAN_DETAILS,
        lambda borrower: loans[borrower.lower()],
    )
    chain.answer(
        DESTINATION_ADDRESS,
        DestinationAbi.CALCULATE_TOTAL_DUE,
        lambda borrower: (loans[borrower.lower()][0] * 105 // 100,),
    )


class TestIsOverdue:
    def test_boundary(self) -> None:
        assert is_overdue(DUE, DUE * 1000 + 1) is True
        assert is_overdue(DUE, DUE * 1000) is False
        assert is_overdue(DUE, DUE * 1000 - 1) is False


class TestDecode:
    def test_undecodable_logs_skipped(self) -> None:
        bad = loan_requested_log(BORROWER_B)
        bad["data"] = "0x1234"
        events = decode_loan_requested([loan_requested_log(BORROWER_A, block=7), bad])
        assert len(events) == 1
        assert events[0].borrower == BORROWER_A
        assert events[0].block_number == 7


class TestScan:
    @pytest.mark.asyncio
    async def test_overdue_only(self, session: Session, destination_chain: FakeChain) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_A), loan_requested_log(BORROWER_B)]
        _loans(destination_chain, {
            BORROWER_A.lower(): destination_loan(due=DUE),
            BORROWER_B.lower(): destination_loan(due=DUE + 10),
        })

        result = await LiquidationScanner().scan(session, now_ms=(DUE + 5) * 1000)

        assert [p.borrower for p in result] == [BORROWER_A]
        assert result[0].total_due == 105 * ETHER
        assert result[0].overdue is True
        assert result[0].collateral_amount is None

    @pytest.mark.asyncio
    async def test_due_exactly_now_excluded(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_A)]
        _loans(destination_chain, {BORROWER_A.lower(): destination_loan(due=DUE)})
        assert await LiquidationScanner().scan(session, now_ms=DUE * 1000) == []

    @pytest.mark.asyncio
    async def test_inactive_and_unfunded_excluded(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_A), loan_requested_log(BORROWER_B)]
        _loans(destination_chain, {
            BORROWER_A.lower(): destination_loan(due=DUE, active=False),
            BORROWER_B.lower(): destination_loan(due=DUE, funded=False),
        })
        assert await LiquidationScanner().scan(session, now_ms=(DUE + 1) * 1000) == []

    @pytest.mark.asyncio
    async def test_borrower_looked_up_once(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.logs = [
            loan_requested_log(BORROWER_A, block=1),
            loan_requested_log(BORROWER_A, block=2),
        ]
        _loans(destination_chain, {BORROWER_A.lower(): destination_loan(due=DUE)})

        result = await LiquidationScanner().scan(session, now_ms=(DUE + 1) * 1000)

        assert len(result) == 1
        assert destination_chain.calls[DETAILS] == 1

    @pytest.mark.asyncio
    async def test_sorted_by_borrower(self, session: Session, destination_chain: FakeChain) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_B), loan_requested_log(BORROWER_A)]
        _loans(destination_chain, {
            BORROWER_A.lower(): destination_loan(due=DUE),
            BORROWER_B.lower(): destination_loan(due=DUE),
        })
        result = await LiquidationScanner().scan(session, now_ms=(DUE + 1) * 1000)
        assert [p.borrower for p in result] == [BORROWER_A, BORROWER_B]

    @pytest.mark.asyncio
    async def test_lookup_failure_excluded(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_A)]
        _loans(destination_chain, {BORROWER_A.lower(): destination_loan(due=DUE)})
        destination_chain.failing.add(DETAILS)

        scanner = LiquidationScanner()
        assert await scanner.scan(session, now_ms=(DUE + 1) * 1000) == []
        assert scanner.last_result == []

    @pytest.mark.asyncio
    async def test_log_failure_returns_empty(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.failing.add("eth_getLogs")
        assert await LiquidationScanner().scan(session) == []

    @pytest.mark.asyncio
    async def test_origin_session_has_nothing_to_scan(
        self, registry: ContractBindingRegistry, origin_chain: FakeChain
    ) -> None:
        session = Session(
            chain_id=ORIGIN_CHAIN_ID,
            account=ACCOUNT,
            connection=origin_chain,
            bindings=registry.bind(ORIGIN_CHAIN_ID),
        )
        assert await LiquidationScanner().scan(session) == []

    @pytest.mark.asyncio
    async def test_collateral_read_from_origin(
        self,
        session: Session,
        registry: ContractBindingRegistry,
        origin_chain: FakeChain,
        destination_chain: FakeChain,
    ) -> None:
        origin_chain.answer(
            ORIGIN_ADDRESS,
            OriginAbi.GET_LOAN_DETAILS,
            origin_loan(collateral=2 * ETHER, loan=100 * ETHER, active=True),
        )
        destination_chain.logs = [loan_requested_log(BORROWER_A)]
        _loans(destination_chain, {BORROWER_A.lower(): destination_loan(due=DUE)})

        scanner = LiquidationScanner(origin=registry.bind(ORIGIN_CHAIN_ID).origin)
        result = await scanner.scan(session, now_ms=(DUE + 1) * 1000)

        assert result[0].collateral_amount == 2 * ETHER
        assert result[0].loan_amount == 100 * ETHER


class TestEventHistory:
    @pytest.mark.asyncio
    async def test_single_query_by_default(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        await LiquidationScanner(from_block=5).scan(session)
        assert destination_chain.log_queries == [(5, None)]

    @pytest.mark.asyncio
    async def test_chunked_by_block_range(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.head = 250
        await LiquidationScanner(max_block_range=100).scan(session)
        assert destination_chain.log_queries == [(0, 99), (100, 199), (200, 250)]

    @pytest.mark.asyncio
    async def test_cache_fetches_only_new_blocks(
        self, session: Session, destination_chain: FakeChain
    ) -> None:
        destination_chain.logs = [loan_requested_log(BORROWER_A, block=10)]
        _loans(destination_chain, {
            BORROWER_A.lower(): destination_loan(due=DUE),
            BORROWER_B.lower(): destination_loan(due=DUE),
        })
        scanner = LiquidationScanner(cache_logs=True)
        now_ms = (DUE + 1) * 1000

        assert len(await scanner.scan(session, now_ms=now_ms)) == 1

        destination_chain.head = 120
        destination_chain.logs.append(loan_requested_log(BORROWER_B, block=110))
        assert len(await scanner.scan(session, now_ms=now_ms)) == 2
        assert destination_chain.log_queries == [(0, 100), (101, 120)]
