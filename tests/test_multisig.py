"""
Tests for key derivation and 2-of-3 address generation.
"""

import pytest

from hdsweep.config import NetworkType, ServiceKey
from hdsweep.errors import InvalidPath, UnknownKeyIndex
from hdsweep.wallet.address import parse_multisig_script, sort_multisig_keys
from hdsweep.wallet.bip32 import HDKey
from hdsweep.wallet.keys import KeyDerivationManager
from hdsweep.wallet.multisig import MultisigAddressGenerator
from hdsweep.wallet.path import DerivationPath

from conftest import BACKUP_MNEMONIC, PRIMARY_MNEMONIC, PRIMARY_PASSPHRASE


class TestKeyDerivationManager:
    def test_key_indices_in_configured_order(self, key_manager: KeyDerivationManager):
        assert key_manager.key_indices == [0, 9999]

    def test_service_key_matches_private_derivation(
        self, key_manager: KeyDerivationManager, service_master: HDKey
    ):
        """The xpub alone yields the same child key the service derives privately."""
        derived = key_manager.service_public_key("M/9999'/0/5")
        expected = service_master.derive("M/9999'/0/5")
        assert derived.get_public_key_bytes() == expected.get_public_key_bytes()

    def test_backup_key_uses_unhardened_path(self, key_manager: KeyDerivationManager):
        derived = key_manager.backup_public_key("M/3'/0/1")
        expected = key_manager.backup_root.derive("M/3/0/1")
        assert derived.get_public_key_bytes() == expected.get_public_key_bytes()

    def test_primary_key_uses_full_path(self, key_manager: KeyDerivationManager):
        derived = key_manager.primary_public_key("M/3'/0/1")
        expected = key_manager.primary_root.derive("m/3'/0/1")
        assert derived.get_public_key_bytes() == expected.get_public_key_bytes()
        assert derived.get_public_key_bytes() != (
            key_manager.primary_root.derive("M/3/0/1").get_public_key_bytes()
        )

    def test_private_keys_match_public(self, key_manager: KeyDerivationManager):
        path = "M/0'/0/2"
        primary = key_manager.primary_private_key(path)
        backup = key_manager.backup_private_key(path)
        assert primary.is_private and backup.is_private
        assert primary.get_public_key_bytes() == (
            key_manager.primary_public_key(path).get_public_key_bytes()
        )
        assert backup.get_public_key_bytes() == (
            key_manager.backup_public_key(path).get_public_key_bytes()
        )

    def test_unknown_key_index(self, key_manager: KeyDerivationManager):
        with pytest.raises(UnknownKeyIndex) as exc_info:
            key_manager.service_public_key("M/7'/0/0")
        assert exc_info.value.key_index == 7

    def test_mnemonic_whitespace_ignored(self, service_keys: list[ServiceKey]):
        messy = KeyDerivationManager(
            "  " + PRIMARY_MNEMONIC.replace(" ", "\n", 3) + "  ",
            PRIMARY_PASSPHRASE,
            BACKUP_MNEMONIC.replace(" ", "   "),
            service_keys,
            network=NetworkType.TESTNET,
        )
        clean = KeyDerivationManager(
            PRIMARY_MNEMONIC,
            PRIMARY_PASSPHRASE,
            BACKUP_MNEMONIC,
            service_keys,
            network=NetworkType.TESTNET,
        )
        assert messy.primary_root.to_extended_key() == clean.primary_root.to_extended_key()
        assert messy.backup_root.to_extended_key() == clean.backup_root.to_extended_key()


class TestMultisigAddressGenerator:
    def test_deterministic(self, generator: MultisigAddressGenerator):
        first = generator.address_for_path("M/0'/0/0")
        second = generator.address_for_path("M/0'/0/0")
        assert first == second
        assert first.address.startswith("2")
        assert first.path == DerivationPath.parse("M/0'/0/0")

    def test_private_path_notation_accepted(self, generator: MultisigAddressGenerator):
        assert (
            generator.address_for_path("m/0'/0/4").address
            == generator.address_for_path("M/0'/0/4").address
        )

    def test_redeem_script_holds_sorted_keys(self, generator: MultisigAddressGenerator):
        descriptor = generator.address_for_path("M/9999'/0/3")
        required, script_keys = parse_multisig_script(descriptor.redeem_script)
        assert required == 2
        assert script_keys == sort_multisig_keys(generator.public_keys_for_path("M/9999'/0/3"))

    def test_key_order_does_not_change_address(
        self, generator: MultisigAddressGenerator, key_manager: KeyDerivationManager
    ):
        """Swapping the roles of primary and backup keys yields the same address."""
        path = "M/0'/0/1"
        swapped = [
            key_manager.backup_public_key(path).get_public_key_bytes(),
            key_manager.service_public_key(path).get_public_key_bytes(),
            key_manager.primary_public_key(path).get_public_key_bytes(),
        ]
        assert sort_multisig_keys(swapped) == sort_multisig_keys(
            generator.public_keys_for_path(path)
        )

    def test_different_indices_differ(self, generator: MultisigAddressGenerator):
        a = generator.address_for_path("M/0'/0/0").address
        b = generator.address_for_path("M/0'/0/1").address
        c = generator.address_for_path("M/9999'/0/0").address
        assert len({a, b, c}) == 3

    def test_unknown_key_index(self, generator: MultisigAddressGenerator):
        with pytest.raises(UnknownKeyIndex):
            generator.address_for_path("M/42'/0/0")

    def test_invalid_path(self, generator: MultisigAddressGenerator):
        with pytest.raises(InvalidPath):
            generator.address_for_path("M/0'/x/0")

    def test_generate_batch(self, generator: MultisigAddressGenerator):
        batch = generator.generate_batch(5, 4, 0)
        assert len(batch) == 4
        paths = [str(d.path) for d in batch.values()]
        assert paths == ["M/0'/0/5", "M/0'/0/6", "M/0'/0/7", "M/0'/0/8"]
        for address, descriptor in batch.items():
            assert descriptor.address == address
            assert generator.address_for_path(descriptor.path).address == address

    def test_mainnet_addresses(self, service_master: HDKey):
        keys = [
            ServiceKey(
                key_index=0,
                extended_public_key=service_master.derive("M/0'").to_extended_key(),
            )
        ]
        manager = KeyDerivationManager(PRIMARY_MNEMONIC, "", BACKUP_MNEMONIC, keys)
        address = MultisigAddressGenerator(manager).address_for_path("M/0'/0/0").address
        assert address.startswith("3")
