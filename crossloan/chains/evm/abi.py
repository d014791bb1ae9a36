"""Contract method and event codec.

This is the single place where ABI tuples are touched positionally. Every
result leaves here as a mapping keyed by field name.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import (
    decode_hex,
    encode_hex,
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)

from ...errors import DecodeFailure


def _normalise(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    return value


@dataclass(frozen=True)
class ContractCall:
    """An encoded, unsigned contract invocation."""

    to: str
    data: str
    value: int = 0
    description: str = ""


@dataclass(frozen=True)
class ContractMethod:
    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[tuple[str, str], ...] = ()
    payable: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode(self, *args: Any) -> str:
        """Return calldata (selector + encoded arguments) as 0x-hex."""
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}"
            )
        return encode_hex(self.selector + abi_encode(list(self.inputs), list(args)))

    def decode(self, data: str) -> dict[str, Any]:
        """Decode a call result into ``{field_name: value}``."""
        types = [abi_type for _, abi_type in self.outputs]
        try:
            values = abi_decode(types, decode_hex(data))
        except Exception as e:
            raise DecodeFailure(f"Cannot decode {self.signature} result: {e}") from e
        return {
            field_name: _normalise(abi_type, value)
            for (field_name, abi_type), value in zip(self.outputs, values)
        }


@dataclass(frozen=True)
class EventSpec:
    name: str
    indexed: tuple[tuple[str, str], ...] = ()
    data: tuple[tuple[str, str], ...] = ()

    @property
    def signature(self) -> str:
        types = [t for _, t in self.indexed] + [t for _, t in self.data]
        return f"{self.name}({','.join(types)})"

    @property
    def topic(self) -> str:
        return encode_hex(event_signature_to_log_topic(self.signature))

    def decode(self, log: dict[str, Any]) -> dict[str, Any]:
        """Decode one raw log entry into ``{field_name: value}``.

        Indexed parameters come from ``topics[1:]``, the rest from ``data``.
        """
        try:
            topics = log["topics"]
            if len(topics) != 1 + len(self.indexed):
                raise ValueError(f"expected {1 + len(self.indexed)} topics, got {len(topics)}")
            if str(topics[0]).lower() != self.topic:
                raise ValueError(f"topic {topics[0]} is not {self.signature}")

            decoded: dict[str, Any] = {}
            for (field_name, abi_type), topic in zip(self.indexed, topics[1:]):
                (value,) = abi_decode([abi_type], decode_hex(topic))
                decoded[field_name] = _normalise(abi_type, value)

            values = abi_decode([t for _, t in self.data], decode_hex(log.get("data", "0x")))
            for (field_name, abi_type), value in zip(self.data, values):
                decoded[field_name] = _normalise(abi_type, value)
            return decoded
        except Exception as e:
            raise DecodeFailure(f"Cannot decode {self.name} log: {e}") from e


# ---------------------------------------------------------------------------
# Origin lending contract
# ---------------------------------------------------------------------------


class OriginAbi:
    GET_LOAN_DETAILS = ContractMethod(
        "getLoanDetails",
        ("address",),
        (
            ("collateral_amount", "uint256"),
            ("loan_amount", "uint256"),
            ("destination_chain_id", "uint256"),
            ("interest_rate_bps", "uint256"),
            ("credit_score", "uint256"),
            ("duration_days", "uint256"),
            ("active", "bool"),
        ),
    )
    CALCULATE_REQUIRED_COLLATERAL = ContractMethod(
        "calculateRequiredCollateral", ("uint256",), (("amount", "uint256"),)
    )
    REQUEST_LOAN = ContractMethod("requestLoan", ("uint256", "uint256", "uint256"))
    DEPOSIT_COLLATERAL = ContractMethod("depositCollateral", payable=True)
    GET_MATIC_PRICE = ContractMethod("getMaticPrice", outputs=(("price", "int256"),))
    GET_ETH_PRICE = ContractMethod("getEthPrice", outputs=(("price", "int256"),))


# ---------------------------------------------------------------------------
# Destination lending contract
# ---------------------------------------------------------------------------


class DestinationAbi:
    GET_LOAN_DETAILS = ContractMethod(
        "getLoanDetails",
        ("address",),
        (
            ("amount", "uint256"),
            ("repaid_amount", "uint256"),
            ("interest_rate_bps", "uint256"),
            ("due_timestamp", "uint256"),
            ("credit_score", "uint256"),
            ("active", "bool"),
            ("funded", "bool"),
        ),
    )
    CALCULATE_TOTAL_DUE = ContractMethod(
        "calculateTotalDue", ("address",), (("amount", "uint256"),)
    )
    REPAY_LOAN = ContractMethod("repayLoan", ("uint256",))
    LIQUIDATE_LOAN = ContractMethod("liquidateLoan", ("address",))
    LOAN_REQUESTED = EventSpec(
        "LoanRequested",
        indexed=(("borrower", "address"),),
        data=(("amount", "uint256"), ("interest_rate", "uint256")),
    )


class TokenAbi:
    BALANCE_OF = ContractMethod("balanceOf", ("address",), (("balance", "uint256"),))
