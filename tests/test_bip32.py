"""
Tests for BIP32 key derivation and BIP39 seeds.
"""

import pytest

from hdsweep.config import NetworkType
from hdsweep.errors import InvalidPath
from hdsweep.wallet.bip32 import (
    HDKey,
    InvalidExtendedKey,
    mnemonic_to_seed,
    normalize_mnemonic,
)

# BIP32 test vector 1
VECTOR1_SEED = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
VECTOR1 = {
    "m": (
        "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjqJoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8",  # noqa: E501
        "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNKmPGJxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi",  # noqa: E501
    ),
    "m/0'": (
        "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw",  # noqa: E501
        "xprv9uHRZZhk6KAJC1avXpDAp4MDc3sQKNxDiPvvkX8Br5ngLNv1TxvUxt4cV1rGL5hj6KCesnDYUhd7oWgT11eZG7XnxHrnYeSvkzY7d2bhkJ7",  # noqa: E501
    ),
    "m/0'/1": (
        "xpub6ASuArnXKPbfEwhqN6e3mwBcDTgzisQN1wXN9BJcM47sSikHjJf3UFHKkNAWbWMiGj7Wf5uMash7SyYq527Hqck2AxYysAA7xmALppuCkwQ",  # noqa: E501
        "xprv9wTYmMFdV23N2TdNG573QoEsfRrWKQgWeibmLntzniatZvR9BmLnvSxqu53Kw1UmYPxLgboyZQaXwTCg8MSY3H2EU4pWcQDnRnrVA1xe8fs",  # noqa: E501
    ),
}


@pytest.fixture
def master() -> HDKey:
    return HDKey.from_seed(VECTOR1_SEED)


class TestMnemonic:
    def test_bip39_vector(self):
        """Test the reference BIP39 seed for the all-abandon mnemonic."""
        seed = mnemonic_to_seed(
            "abandon abandon abandon abandon abandon abandon "
            "abandon abandon abandon abandon abandon about",
            "TREZOR",
        )
        assert seed.hex() == (
            "c55257c360c07c72029aebc1b53c05ed0362ada38ead3e3e9efa3708e5349553"
            "1f09a6987599d18264c1e1c92f2cf141630c7a3c4ab7c81b2f001698e7463b04"
        )

    def test_passphrase_changes_seed(self):
        mnemonic = "legal winner thank year wave sausage worth useful legal winner thank yellow"
        assert mnemonic_to_seed(mnemonic) != mnemonic_to_seed(mnemonic, "x")

    def test_normalize_mnemonic(self):
        """Pasted mnemonics lose stray whitespace and line breaks."""
        assert normalize_mnemonic("  abandon\n abandon   about \t") == "abandon abandon about"


class TestBIP32Vectors:
    @pytest.mark.parametrize("path", list(VECTOR1))
    def test_private_serialization(self, master: HDKey, path: str):
        assert master.derive(path).to_extended_key() == VECTOR1[path][1]

    @pytest.mark.parametrize("path", list(VECTOR1))
    def test_public_serialization(self, master: HDKey, path: str):
        public_path = "M" + path[1:]
        assert master.derive(public_path).to_extended_key() == VECTOR1[path][0]

    def test_public_path_returns_neutered_key(self, master: HDKey):
        key = master.derive("M/0'/1")
        assert not key.is_private
        assert key.private_key is None
        with pytest.raises(ValueError):
            key.get_private_key_bytes()


class TestExtendedKeyParsing:
    def test_xpub_round_trip(self):
        xpub = VECTOR1["m/0'"][0]
        key = HDKey.from_extended_key(xpub)
        assert not key.is_private
        assert key.depth == 1
        assert key.to_extended_key() == xpub

    def test_xprv_round_trip(self):
        xprv = VECTOR1["m/0'/1"][1]
        key = HDKey.from_extended_key(xprv)
        assert key.is_private
        assert key.to_extended_key() == xprv

    def test_wrong_network_rejected(self):
        with pytest.raises(InvalidExtendedKey, match="does not match network"):
            HDKey.from_extended_key(VECTOR1["m"][0], NetworkType.TESTNET)

    def test_bad_checksum_rejected(self):
        xpub = VECTOR1["m"][0]
        corrupted = xpub[:-1] + ("9" if xpub[-1] != "9" else "8")
        with pytest.raises(InvalidExtendedKey):
            HDKey.from_extended_key(corrupted)

    def test_testnet_serialization(self, master: HDKey):
        tpub = master.derive("M/0'").to_extended_key(NetworkType.TESTNET)
        assert tpub.startswith("tpub")
        parsed = HDKey.from_extended_key(tpub, NetworkType.TESTNET)
        assert parsed.get_public_key_bytes() == master.derive("M/0'").get_public_key_bytes()


class TestPublicDerivation:
    def test_public_child_matches_private_child(self, master: HDKey):
        """Non-hardened steps from an xpub give the same keys as from the xprv."""
        xpub_node = HDKey.from_extended_key(VECTOR1["m/0'"][0])
        from_public = xpub_node.derive("M/1/7")
        from_private = master.derive("M/0'/1/7")
        assert from_public.get_public_key_bytes() == from_private.get_public_key_bytes()
        assert from_public.chain_code == from_private.chain_code

    def test_matches_vector_xpub(self, master: HDKey):
        xpub_node = HDKey.from_extended_key(VECTOR1["m/0'"][0])
        assert xpub_node.derive("M/1").to_extended_key() == VECTOR1["m/0'/1"][0]

    def test_hardened_from_public_rejected(self):
        xpub_node = HDKey.from_extended_key(VECTOR1["m"][0])
        with pytest.raises(InvalidPath, match="hardened"):
            xpub_node.derive("M/0'")

    def test_private_path_from_public_rejected(self):
        xpub_node = HDKey.from_extended_key(VECTOR1["m"][0])
        with pytest.raises(InvalidPath):
            xpub_node.derive("m/0")

    def test_fingerprint_links_parent(self, master: HDKey):
        child = master.derive("m/0'")
        assert child.parent_fingerprint == master.fingerprint
        assert child.depth == 1
