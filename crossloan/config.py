"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from eth_utils import is_address

from .models import ChainRole

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountConfig:
    address: str = ""
    private_key: str = ""


@dataclass(frozen=True)
class ChainConfig:
    name: str = ""
    chain_id: int = 0
    role: ChainRole = ChainRole.ORIGIN
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    native_token: str = "ETH"
    explorer_tx_url: str = ""


@dataclass(frozen=True)
class ContractsConfig:
    origin: str = ""
    destination: str = ""
    token: str = ""


@dataclass(frozen=True)
class PricesConfig:
    poll_interval_seconds: float = 30.0
    scale: int = 10**8


@dataclass(frozen=True)
class TransactionsConfig:
    receipt_timeout_seconds: float = 120.0
    receipt_poll_seconds: float = 2.0
    gas_multiplier: float = 1.2


@dataclass(frozen=True)
class LedgerConfig:
    path: str = "~/.crossloan/ledger.json"
    watch_interval_seconds: float = 2.0


@dataclass(frozen=True)
class ScannerConfig:
    from_block: int = 0
    max_block_range: int = 0
    cache_logs: bool = False
    interval_seconds: float = 300.0


@dataclass(frozen=True)
class AppConfig:
    account: AccountConfig = field(default_factory=AccountConfig)
    chains: dict[str, ChainConfig] = field(default_factory=dict)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    prices: PricesConfig = field(default_factory=PricesConfig)
    transactions: TransactionsConfig = field(default_factory=TransactionsConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)

    def chain_for_role(self, role: ChainRole) -> ChainConfig:
        for chain in self.chains.values():
            if chain.role == role:
                return chain
        raise KeyError(f"No chain configured with role '{role.value}'")

    def chain_by_id(self, chain_id: int) -> ChainConfig | None:
        for chain in self.chains.values():
            if chain.chain_id == chain_id:
                return chain
        return None

    @property
    def origin(self) -> ChainConfig:
        return self.chain_for_role(ChainRole.ORIGIN)

    @property
    def destination(self) -> ChainConfig:
        return self.chain_for_role(ChainRole.DESTINATION)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_account(raw: dict[str, Any]) -> AccountConfig:
    return AccountConfig(
        address=raw.get("address", ""),
        private_key=raw.get("private_key", ""),
    )


def _build_chains(raw: dict[str, Any]) -> dict[str, ChainConfig]:
    chains: dict[str, ChainConfig] = {}
    for name, cfg in raw.items():
        role = cfg.get("role", "")
        try:
            chain_role = ChainRole(role)
        except ValueError:
            raise ValueError(f"Chain '{name}' has unknown role '{role}'") from None
        chains[name] = ChainConfig(
            name=name,
            chain_id=int(cfg.get("chain_id", 0)),
            role=chain_role,
            rpc_endpoints=tuple(cfg.get("rpc_endpoints", [])),
            rpc_timeout=int(cfg.get("rpc_timeout", 30)),
            native_token=cfg.get("native_token", "ETH"),
            explorer_tx_url=cfg.get("explorer_tx_url", ""),
        )
    return chains


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        origin=raw.get("origin", ""),
        destination=raw.get("destination", ""),
        token=raw.get("token", ""),
    )


def _build_prices(raw: dict[str, Any]) -> PricesConfig:
    return PricesConfig(
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 30.0)),
        scale=int(float(raw.get("scale", 10**8))),
    )


def _build_transactions(raw: dict[str, Any]) -> TransactionsConfig:
    return TransactionsConfig(
        receipt_timeout_seconds=float(raw.get("receipt_timeout_seconds", 120.0)),
        receipt_poll_seconds=float(raw.get("receipt_poll_seconds", 2.0)),
        gas_multiplier=float(raw.get("gas_multiplier", 1.2)),
    )


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        path=raw.get("path", LedgerConfig.path),
        watch_interval_seconds=float(raw.get("watch_interval_seconds", 2.0)),
    )


def _build_scanner(raw: dict[str, Any]) -> ScannerConfig:
    return ScannerConfig(
        from_block=int(raw.get("from_block", 0)),
        max_block_range=int(raw.get("max_block_range", 0)),
        cache_logs=bool(raw.get("cache_logs", False)),
        interval_seconds=float(raw.get("interval_seconds", 300.0)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        account=_build_account(raw.get("account", {})),
        chains=_build_chains(raw.get("chains", {})),
        contracts=_build_contracts(raw.get("contracts", {})),
        prices=_build_prices(raw.get("prices", {})),
        transactions=_build_transactions(raw.get("transactions", {})),
        ledger=_build_ledger(raw.get("ledger", {})),
        scanner=_build_scanner(raw.get("scanner", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    for role in ChainRole:
        count = sum(1 for c in cfg.chains.values() if c.role == role)
        if count != 1:
            raise ValueError(
                f"Exactly one '{role.value}' chain must be configured, found {count}"
            )

    seen: set[int] = set()
    for chain in cfg.chains.values():
        if chain.chain_id <= 0:
            raise ValueError(f"Chain '{chain.name}' has no chain_id")
        if chain.chain_id in seen:
            raise ValueError(f"Duplicate chain_id {chain.chain_id}")
        seen.add(chain.chain_id)
        if not chain.rpc_endpoints:
            raise ValueError(f"Chain '{chain.name}' has no rpc_endpoints")

    for name in ("origin", "destination", "token"):
        address = getattr(cfg.contracts, name)
        if not is_address(address):
            raise ValueError(f"Contract address '{name}' is missing or invalid")

    if cfg.account.address and not is_address(cfg.account.address):
        raise ValueError("Account address is invalid")
