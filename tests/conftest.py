"""
Pytest configuration and fixtures for sweeper tests.
"""

from __future__ import annotations

from collections.abc import Callable, Collection

import pytest

from hdsweep.backends.base import UTXOResolver
from hdsweep.config import NetworkType, ServiceKey, SweepConfig
from hdsweep.wallet.bip32 import HDKey, mnemonic_to_seed
from hdsweep.wallet.keys import KeyDerivationManager
from hdsweep.wallet.models import UnspentOutput
from hdsweep.wallet.multisig import MultisigAddressGenerator

PRIMARY_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
PRIMARY_PASSPHRASE = "password"
BACKUP_MNEMONIC = "legal winner thank year wave sausage worth useful legal winner thank yellow"
SERVICE_MNEMONIC = "letter advice cage absurd amount doctor acoustic avoid letter advice cage above"

NETWORK = NetworkType.TESTNET


class FakeResolver(UTXOResolver):
    """
    In-memory resolver. ``funds`` maps address -> outputs; ``fail_on`` is called
    with (call_number, addresses) and raises to simulate a backend failure.
    """

    def __init__(
        self,
        funds: dict[str, list[UnspentOutput]] | None = None,
        fail_on: Callable[[int, list[str]], None] | None = None,
    ):
        self.funds = funds or {}
        self.fail_on = fail_on
        self.calls: list[list[str]] = []
        self.closed = False

    async def resolve(self, addresses: Collection[str]) -> dict[str, list[UnspentOutput]]:
        addresses = list(addresses)
        self.calls.append(addresses)
        if self.fail_on is not None:
            self.fail_on(len(self.calls), addresses)
        return {a: list(self.funds[a]) for a in addresses if a in self.funds}

    async def close(self) -> None:
        self.closed = True


def make_utxo(value: int, n: int = 0, script_pubkey: str = "") -> UnspentOutput:
    return UnspentOutput(
        txid=f"{n:02x}" * 32,
        vout=n % 4,
        value=value,
        script_pubkey=script_pubkey,
    )


@pytest.fixture
def service_master() -> HDKey:
    """Private root the service would hold; tests only hand out its xpubs."""
    return HDKey.from_seed(mnemonic_to_seed(SERVICE_MNEMONIC))


@pytest.fixture
def service_keys(service_master: HDKey) -> list[ServiceKey]:
    return [
        ServiceKey(
            key_index=index,
            extended_public_key=service_master.derive(f"M/{index}'").to_extended_key(NETWORK),
        )
        for index in (0, 9999)
    ]


@pytest.fixture
def key_manager(service_keys: list[ServiceKey]) -> KeyDerivationManager:
    return KeyDerivationManager(
        PRIMARY_MNEMONIC, PRIMARY_PASSPHRASE, BACKUP_MNEMONIC, service_keys, network=NETWORK
    )


@pytest.fixture
def generator(key_manager: KeyDerivationManager) -> MultisigAddressGenerator:
    return MultisigAddressGenerator(key_manager)


@pytest.fixture
def config() -> SweepConfig:
    return SweepConfig(network=NETWORK, sweep_batch_size=10, resolver_timeout=5.0)


@pytest.fixture
def resolver_factory() -> type[FakeResolver]:
    return FakeResolver


@pytest.fixture
def utxo_factory() -> Callable[..., UnspentOutput]:
    return make_utxo
