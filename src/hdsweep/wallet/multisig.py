"""
2-of-3 multisig address generation.
"""

from __future__ import annotations

from hdsweep.constants import RECEIVE_CHAIN, REQUIRED_SIGNATURES
from hdsweep.wallet.address import (
    multisig_redeem_script,
    script_to_p2sh_address,
    sort_multisig_keys,
)
from hdsweep.wallet.keys import KeyDerivationManager
from hdsweep.wallet.models import MultisigDescriptor
from hdsweep.wallet.path import DerivationPath, receive_path


class MultisigAddressGenerator:
    """
    Regenerates the wallet's P2SH multisig addresses.

    Derivation path: M/{keyIndex}'/{chain}/{index}
    - keyIndex: service key index (hardened)
    - chain: always 0, the wallet never hands out change addresses
    - index: address index
    """

    def __init__(self, keys: KeyDerivationManager):
        self.keys = keys
        self.network = keys.network

    def public_keys_for_path(self, path: str | DerivationPath) -> list[bytes]:
        """Primary, backup and service public keys for ``path``, unsorted."""
        path = DerivationPath.parse(path).to_public()
        # Resolve the service key first so an unknown index fails before any derivation
        service = self.keys.service_public_key(path)
        primary = self.keys.primary_public_key(path)
        backup = self.keys.backup_public_key(path)
        return [
            primary.get_public_key_bytes(),
            backup.get_public_key_bytes(),
            service.get_public_key_bytes(),
        ]

    def address_for_path(self, path: str | DerivationPath) -> MultisigDescriptor:
        path = DerivationPath.parse(path).to_public()
        pubkeys = sort_multisig_keys(self.public_keys_for_path(path))

        redeem_script = multisig_redeem_script(REQUIRED_SIGNATURES, pubkeys)
        address = script_to_p2sh_address(redeem_script, self.network)

        return MultisigDescriptor(address=address, redeem_script=redeem_script, path=path)

    def generate_batch(
        self, start: int, count: int, key_index: int
    ) -> dict[str, MultisigDescriptor]:
        """Descriptors for M/keyIndex'/0/start .. start+count-1, keyed by address."""
        addresses: dict[str, MultisigDescriptor] = {}
        for i in range(count):
            descriptor = self.address_for_path(receive_path(key_index, start + i, RECEIVE_CHAIN))
            addresses[descriptor.address] = descriptor
        return addresses
