"""
Wallet sweeper service for 2-of-3 multisig HD wallets.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from hdsweep.backends.base import UTXOResolver
from hdsweep.config import ServiceKey, SweepConfig
from hdsweep.errors import NoFundsFound
from hdsweep.wallet.builder import SweepTransactionBuilder
from hdsweep.wallet.discovery import DiscoveryObserver, FundDiscoveryEngine
from hdsweep.wallet.fees import FeeEstimator
from hdsweep.wallet.keys import KeyDerivationManager
from hdsweep.wallet.models import MultisigDescriptor, SweepData
from hdsweep.wallet.multisig import MultisigAddressGenerator
from hdsweep.wallet.path import DerivationPath
from hdsweep.wallet.signing import MultisigSigner
from hdsweep.wallet.transaction import SignedTransaction


class WalletSweeper:
    """
    Recovers the funds of a 2-of-3 multisig wallet without the wallet service.

    Needs the primary mnemonic (+ passphrase), the backup mnemonic and the
    service extended public keys. Discovery results are cached for the
    session; every sweep reuses them until discovery is forced to run again.
    """

    def __init__(
        self,
        primary_mnemonic: str,
        primary_passphrase: str,
        backup_mnemonic: str,
        service_keys: Iterable[ServiceKey],
        resolver: UTXOResolver,
        config: SweepConfig | None = None,
        observer: DiscoveryObserver | None = None,
        fee_estimator: FeeEstimator | None = None,
    ):
        self.config = config or SweepConfig()
        self.network = self.config.bitcoin_network
        self.resolver = resolver

        self.keys = KeyDerivationManager(
            primary_mnemonic,
            primary_passphrase,
            backup_mnemonic,
            service_keys,
            network=self.network,
        )
        self.generator = MultisigAddressGenerator(self.keys)
        self.discovery = FundDiscoveryEngine(self.generator, resolver, self.config, observer)
        self.signer = MultisigSigner(self.keys)
        self.builder = SweepTransactionBuilder(self.config, self.signer, fee_estimator)

        self.sweep_data: SweepData | None = None

        logger.info(
            f"Initialized sweeper on {self.network.value} with "
            f"{len(self.keys.key_indices)} service key(s)"
        )

    def create_address(self, path: str | DerivationPath) -> MultisigDescriptor:
        """Multisig address and redeem script for a single path."""
        return self.generator.address_for_path(path)

    def create_batch_addresses(
        self, start: int, count: int, key_index: int
    ) -> dict[str, MultisigDescriptor]:
        return self.generator.generate_batch(start, count, key_index)

    async def discover_wallet_funds(self, force: bool = False) -> SweepData:
        """
        Run fund discovery, or return the cached result.
        A forced rediscovery replaces the cache only once it has completed.
        """
        if self.sweep_data is not None and not force:
            return self.sweep_data

        sweep_data = await self.discovery.discover()
        self.sweep_data = sweep_data
        return sweep_data

    async def sweep_wallet(self, destination: str) -> SignedTransaction:
        """
        Discover funds if needed, then build and sign the sweep to ``destination``.

        Raises:
            NoFundsFound: nothing was found on any generated address
            InsufficientFundsForFee: balance too small to pay the fee
            SigningFailure: an input could not be signed
        """
        logger.info(f"Starting wallet sweep to address {destination}")
        sweep_data = await self.discover_wallet_funds()

        if sweep_data.total_balance == 0:
            raise NoFundsFound(sweep_data.total_addresses_searched)

        return self.builder.build_sweep_transaction(sweep_data, destination)

    async def close(self) -> None:
        """Close resolver connection"""
        await self.resolver.close()
