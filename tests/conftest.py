"""Shared test fixtures, sample data and an in-memory chain."""
from __future__ import annotations

import textwrap
from collections import Counter
from pathlib import Path
from typing import Any, Callable

import pytest
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import decode_hex, encode_hex, to_checksum_address

from crossloan.chains.evm.abi import (
    ContractCall,
    ContractMethod,
    DestinationAbi,
    OriginAbi,
)
from crossloan.config import (
    AccountConfig,
    AppConfig,
    ChainConfig,
    ContractsConfig,
    LedgerConfig,
    ScannerConfig,
    TransactionsConfig,
)
from crossloan.errors import RpcError
from crossloan.ledger import TransactionLedger
from crossloan.models import ChainRole, OriginLoanDetails
from crossloan.registry import ContractBindingRegistry
from crossloan.services.transactions import TransactionSubmitter
from crossloan.session import SessionManager

ORIGIN_CHAIN_ID = 11155111
DESTINATION_CHAIN_ID = 84532

ORIGIN_ADDRESS = to_checksum_address("0x" + "11" * 20)
DESTINATION_ADDRESS = to_checksum_address("0x" + "22" * 20)
TOKEN_ADDRESS = to_checksum_address("0x" + "33" * 20)

ACCOUNT = to_checksum_address("0x" + "ab" * 20)
BORROWER_A = to_checksum_address("0x" + "0a" * 20)
BORROWER_B = to_checksum_address("0x" + "0b" * 20)

ETHER = 10**18


def tx_hash(n: int) -> str:
    return f"0x{n:064x}"


# ---------------------------------------------------------------------------
# Sample on-chain data
# ---------------------------------------------------------------------------


def origin_loan(
    collateral: int = 0,
    loan: int = 0,
    active: bool = False,
    destination_chain_id: int = DESTINATION_CHAIN_ID,
    interest_rate_bps: int = 500,
    credit_score: int = 700,
    duration_days: int = 30,
) -> tuple:
    return (
        collateral, loan, destination_chain_id, interest_rate_bps,
        credit_score, duration_days, active,
    )


def origin_details(values: tuple) -> OriginLoanDetails:
    """Build the decoded record from an ``origin_loan`` tuple."""
    names = [name for name, _ in OriginAbi.GET_LOAN_DETAILS.outputs]
    return OriginLoanDetails(**dict(zip(names, values)))


def destination_loan(
    amount: int = 100 * ETHER,
    repaid: int = 0,
    due: int = 1_700_000_000,
    active: bool = True,
    funded: bool = True,
    interest_rate_bps: int = 500,
    credit_score: int = 700,
) -> tuple:
    return (amount, repaid, interest_rate_bps, due, credit_score, active, funded)


def loan_requested_log(
    borrower: str,
    amount: int = 100 * ETHER,
    interest_rate: int = 500,
    block: int = 10,
    address: str = DESTINATION_ADDRESS,
) -> dict[str, Any]:
    return {
        "address": address,
        "topics": [
            DestinationAbi.LOAN_REQUESTED.topic,
            encode_hex(abi_encode(["address"], [borrower])),
        ],
        "data": encode_hex(abi_encode(["uint256", "uint256"], [amount, interest_rate])),
        "blockNumber": hex(block),
    }


# ---------------------------------------------------------------------------
# In-memory chain and wallet
# ---------------------------------------------------------------------------


class FakeChain:
    """A ``ChainClient`` that answers contract calls from registered handlers.

    ``answer(address, method, result)`` registers either a static output tuple
    or a callable receiving the decoded call arguments. Names added to
    ``failing`` (an RPC method or a contract signature) raise ``RpcError``.
    """

    def __init__(self, name: str, chain_id: int, reported_chain_id: int | None = None) -> None:
        self.name = name
        self.expected_chain_id = chain_id
        self.reported_chain_id = chain_id if reported_chain_id is None else reported_chain_id
        self.head = 100
        self.balances: dict[str, int] = {}
        self.logs: list[dict[str, Any]] = []
        self.log_queries: list[tuple[int, int | None]] = []
        self.receipts: dict[str, dict[str, Any] | None] = {}
        self.default_receipt: dict[str, Any] | None = {"status": "0x1"}
        self.raw_sent: list[str] = []
        self.calls: Counter[str] = Counter()
        self.failing: set[str] = set()
        self._answers: dict[tuple[str, bytes], tuple[ContractMethod, Any]] = {}

    def answer(self, address: str, method: ContractMethod, result: tuple | Callable) -> None:
        self._answers[(address.lower(), method.selector)] = (method, result)

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise RpcError(f"{name} failed", code=-32000)

    async def chain_id(self) -> int:
        self._check("eth_chainId")
        return self.reported_chain_id

    async def block_number(self) -> int:
        self._check("eth_blockNumber")
        return self.head

    async def get_balance(self, address: str, block: str = "latest") -> int:
        self._check("eth_getBalance")
        return self.balances.get(address.lower(), 0)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        raw = decode_hex(data)
        key = (to.lower(), raw[:4])
        if key not in self._answers:
            raise RpcError("execution reverted", code=3)
        method, result = self._answers[key]
        self.calls[method.signature] += 1
        self._check(method.signature)
        if callable(result):
            result = result(*abi_decode(list(method.inputs), raw[4:]))
        return encode_hex(abi_encode([t for _, t in method.outputs], list(result)))

    async def get_logs(
        self,
        address: str,
        topics: list[str | None],
        from_block: int = 0,
        to_block: int | None = None,
    ) -> list[dict[str, Any]]:
        self.log_queries.append((from_block, to_block))
        self._check("eth_getLogs")
        end = self.head if to_block is None else to_block
        return [
            log for log in self.logs
            if log["address"].lower() == address.lower()
            and log["topics"][0] == topics[0]
            and from_block <= int(log["blockNumber"], 16) <= end
        ]

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return len(self.raw_sent)

    async def gas_price(self) -> int:
        return 10**9

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        self._check("eth_estimateGas")
        return 100_000

    async def send_raw_transaction(self, raw_tx: str) -> str:
        self._check("eth_sendRawTransaction")
        self.raw_sent.append(raw_tx)
        return tx_hash(len(self.raw_sent))

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return self.receipts.get(tx_hash)

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float, poll_interval: float = 2.0
    ) -> dict[str, Any] | None:
        if tx_hash in self.receipts:
            return self.receipts[tx_hash]
        return self.default_receipt


class FakeWallet:
    """A ``Wallet`` that records calls instead of signing them."""

    def __init__(self, address: str = ACCOUNT) -> None:
        self.address = address
        self.sent: list[tuple[str, ContractCall]] = []
        self.error: Exception | None = None
        self.on_send: Callable[[ContractCall], None] | None = None

    async def send(self, client: Any, call: ContractCall) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append((client.name, call))
        if self.on_send is not None:
            self.on_send(call)
        return tx_hash(len(self.sent))


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def origin_chain_config() -> ChainConfig:
    return ChainConfig(
        name="sepolia",
        chain_id=ORIGIN_CHAIN_ID,
        role=ChainRole.ORIGIN,
        rpc_endpoints=("https://origin1.example.com", "https://origin2.example.com"),
        rpc_timeout=10,
        explorer_tx_url="https://sepolia.etherscan.io/tx",
    )


@pytest.fixture()
def destination_chain_config() -> ChainConfig:
    return ChainConfig(
        name="base-sepolia",
        chain_id=DESTINATION_CHAIN_ID,
        role=ChainRole.DESTINATION,
        rpc_endpoints=("https://dest.example.com",),
        rpc_timeout=10,
        explorer_tx_url="https://sepolia.basescan.org/tx/",
    )


@pytest.fixture()
def sample_app_config(
    tmp_path: Path,
    origin_chain_config: ChainConfig,
    destination_chain_config: ChainConfig,
) -> AppConfig:
    return AppConfig(
        account=AccountConfig(address=ACCOUNT),
        chains={"sepolia": origin_chain_config, "base-sepolia": destination_chain_config},
        contracts=ContractsConfig(
            origin=ORIGIN_ADDRESS, destination=DESTINATION_ADDRESS, token=TOKEN_ADDRESS
        ),
        transactions=TransactionsConfig(receipt_timeout_seconds=1.0, receipt_poll_seconds=0.0),
        ledger=LedgerConfig(path=str(tmp_path / "ledger.json")),
        scanner=ScannerConfig(),
    )


# ---------------------------------------------------------------------------
# Chain / session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def origin_chain() -> FakeChain:
    return FakeChain("sepolia", ORIGIN_CHAIN_ID)


@pytest.fixture()
def destination_chain() -> FakeChain:
    return FakeChain("base-sepolia", DESTINATION_CHAIN_ID)


@pytest.fixture()
def clients(origin_chain: FakeChain, destination_chain: FakeChain) -> dict[int, FakeChain]:
    return {ORIGIN_CHAIN_ID: origin_chain, DESTINATION_CHAIN_ID: destination_chain}


@pytest.fixture()
def registry(
    sample_app_config: AppConfig, clients: dict[int, FakeChain]
) -> ContractBindingRegistry:
    return ContractBindingRegistry(sample_app_config, clients)


@pytest.fixture()
def sessions(registry: ContractBindingRegistry) -> SessionManager:
    return SessionManager(registry)


@pytest.fixture()
def ledger(tmp_path: Path) -> TransactionLedger:
    return TransactionLedger(tmp_path / "ledger.json")


@pytest.fixture()
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture()
def submitter(wallet: FakeWallet, ledger: TransactionLedger) -> TransactionSubmitter:
    return TransactionSubmitter(wallet, ledger, receipt_timeout=1.0, receipt_poll=0.0)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    account:
      address: "{ACCOUNT}"
      private_key: "${{TEST_CROSSLOAN_KEY}}"
    chains:
      sepolia:
        chain_id: {ORIGIN_CHAIN_ID}
        role: origin
        rpc_endpoints: ["https://origin.example.com"]
        rpc_timeout: 10
        explorer_tx_url: "https://sepolia.etherscan.io/tx"
      base-sepolia:
        chain_id: {DESTINATION_CHAIN_ID}
        role: destination
        rpc_endpoints: ["https://dest.example.com"]
    contracts:
      origin: "{ORIGIN_ADDRESS}"
      destination: "{DESTINATION_ADDRESS}"
      token: "{TOKEN_ADDRESS}"
    prices:
      poll_interval_seconds: 15
    scanner:
      from_block: 1000
      max_block_range: 500
      cache_logs: true
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
