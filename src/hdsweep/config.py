"""
Configuration for the wallet sweeper.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hdsweep.constants import DEFAULT_FEE_PER_KB, DEFAULT_SWEEP_BATCH_SIZE, STANDARD_DUST_LIMIT
from hdsweep.errors import UnknownNetwork


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


class ErrorPolicy(str, Enum):
    """What discovery does when the UTXO resolver fails for a batch."""

    CONTINUE = "continue"
    FAIL_FAST = "fail-fast"


# Network identifiers accepted from callers, including the legacy wallet names
NETWORK_ALIASES: dict[str, NetworkType] = {
    "btc": NetworkType.MAINNET,
    "bitcoin": NetworkType.MAINNET,
    "mainnet": NetworkType.MAINNET,
    "btc-mainnet": NetworkType.MAINNET,
    "tbtc": NetworkType.TESTNET,
    "bitcoin-testnet": NetworkType.TESTNET,
    "testnet": NetworkType.TESTNET,
    "btc-testnet": NetworkType.TESTNET,
    "signet": NetworkType.SIGNET,
    "btc-signet": NetworkType.SIGNET,
    "regtest": NetworkType.REGTEST,
    "btc-regtest": NetworkType.REGTEST,
}


def parse_network(network: str | NetworkType) -> NetworkType:
    """Resolve a network identifier, raising UnknownNetwork if unrecognized."""
    if isinstance(network, NetworkType):
        return network
    try:
        return NETWORK_ALIASES[network.strip().lower()]
    except KeyError:
        raise UnknownNetwork(f"Unknown network {network}") from None


class SweepConfig(BaseModel):
    """Immutable settings handed to every sweep component."""

    model_config = {"frozen": True}

    network: NetworkType = NetworkType.MAINNET
    # Promotes a mainnet identifier to testnet, like the legacy "btc" + testnet flag
    testnet: bool = False

    sweep_batch_size: int = Field(default=DEFAULT_SWEEP_BATCH_SIZE, ge=1)
    logging: bool = False

    fee_per_kb: int = Field(default=DEFAULT_FEE_PER_KB, ge=0)
    dust_threshold: int = Field(default=STANDARD_DUST_LIMIT, ge=0)

    error_policy: ErrorPolicy = ErrorPolicy.CONTINUE
    concurrent_scans: bool = False
    resolver_timeout: float | None = Field(default=60.0, gt=0)

    @field_validator("network", mode="before")
    @classmethod
    def resolve_network_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_network(v)
        return v

    @property
    def bitcoin_network(self) -> NetworkType:
        """Effective network after applying the testnet override."""
        if self.testnet and self.network == NetworkType.MAINNET:
            return NetworkType.TESTNET
        return self.network


class Settings(BaseSettings):
    """CLI defaults, overridable from the environment or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="HDSWEEP_", case_sensitive=False
    )

    network: str = "mainnet"
    backend: Literal["bitcoin_core", "mempool"] = "mempool"

    rpc_url: str = "http://127.0.0.1:8332"
    rpc_user: str = ""
    rpc_password: str = ""

    mempool_api_url: str = "https://mempool.space/api"

    sweep_batch_size: int = DEFAULT_SWEEP_BATCH_SIZE
    fee_per_kb: int = DEFAULT_FEE_PER_KB
    resolver_timeout: float = 60.0

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()


class ServiceKey(BaseModel):
    """A published service extended public key and the key index it serves."""

    model_config = {"frozen": True, "populate_by_name": True}

    key_index: int = Field(
        ..., ge=0, lt=0x80000000, validation_alias=AliasChoices("key_index", "keyIndex")
    )
    extended_public_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("extended_public_key", "pubkey", "xpub"),
    )

    @classmethod
    def from_string(cls, value: str) -> ServiceKey:
        """Parse the CLI form "INDEX:XPUB"."""
        index, sep, xpub = value.partition(":")
        if not sep or not index.strip().isdigit():
            raise ValueError(f"Service key must look like INDEX:XPUB, got {value!r}")
        return cls(key_index=int(index), extended_public_key=xpub.strip())
