"""
Key derivation for the three key families of a 2-of-3 wallet.

- primary: private root from the user's main mnemonic + passphrase
- backup:  private root from the user's backup mnemonic (no passphrase)
- service: one published extended public key per key index
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from hdsweep.config import NetworkType, ServiceKey
from hdsweep.errors import UnknownKeyIndex
from hdsweep.wallet.bip32 import HDKey, mnemonic_to_seed, normalize_mnemonic
from hdsweep.wallet.path import DerivationPath


class KeyDerivationManager:
    def __init__(
        self,
        primary_mnemonic: str,
        primary_passphrase: str,
        backup_mnemonic: str,
        service_keys: Iterable[ServiceKey],
        network: NetworkType = NetworkType.MAINNET,
    ):
        self.network = network

        primary_seed = mnemonic_to_seed(normalize_mnemonic(primary_mnemonic), primary_passphrase)
        backup_seed = mnemonic_to_seed(normalize_mnemonic(backup_mnemonic), "")
        self.primary_root = HDKey.from_seed(primary_seed)
        self.backup_root = HDKey.from_seed(backup_seed)

        # Insertion order is the configured scan order
        self.service_roots: dict[int, HDKey] = {}
        for service_key in service_keys:
            node = HDKey.from_extended_key(service_key.extended_public_key, network)
            self.service_roots[service_key.key_index] = node.neuter()

        logger.debug(f"Loaded service keys for key indices {self.key_indices}")

    @property
    def key_indices(self) -> list[int]:
        return list(self.service_roots)

    @staticmethod
    def derive(
        root: HDKey, path: str | DerivationPath, base: str | DerivationPath | None = None
    ) -> HDKey:
        """
        Derive ``path`` from ``root``.

        When ``base`` is given, ``root`` is taken to already sit at ``base`` and
        only the steps of ``path`` below it are applied.
        """
        path = DerivationPath.parse(path)
        if base is not None:
            path = path.relative_to(DerivationPath.parse(base))
        return root.derive(path)

    def service_root(self, key_index: int) -> HDKey:
        try:
            return self.service_roots[key_index]
        except KeyError:
            raise UnknownKeyIndex(key_index) from None

    def service_public_key(self, path: str | DerivationPath) -> HDKey:
        """Service child public key for a path below M/keyIndex'."""
        path = DerivationPath.parse(path).to_public()
        root = self.service_root(path.service_key_index)
        return self.derive(root, path, base=path.service_root)

    def primary_public_key(self, path: str | DerivationPath) -> HDKey:
        return self.derive(self.primary_root, DerivationPath.parse(path).to_public())

    def backup_public_key(self, path: str | DerivationPath) -> HDKey:
        return self.derive(self.backup_root, DerivationPath.parse(path).to_public().unhardened())

    def primary_private_key(self, path: str | DerivationPath) -> HDKey:
        return self.derive(self.primary_root, DerivationPath.parse(path).to_private())

    def backup_private_key(self, path: str | DerivationPath) -> HDKey:
        return self.derive(self.backup_root, DerivationPath.parse(path).to_private().unhardened())
