"""
BIP32 HD key derivation for the sweeper.
Handles both private nodes (primary and backup seeds) and public-only nodes
(the service extended public keys).
"""

from __future__ import annotations

import hashlib
import hmac
import unicodedata

import base58
from coincurve import PrivateKey, PublicKey

from hdsweep.config import NetworkType
from hdsweep.constants import HARDENED
from hdsweep.errors import InvalidPath
from hdsweep.wallet.address import hash160
from hdsweep.wallet.path import DerivationPath

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

# Extended key version bytes: (public, private)
XKEY_VERSIONS: dict[NetworkType, tuple[bytes, bytes]] = {
    NetworkType.MAINNET: (bytes.fromhex("0488b21e"), bytes.fromhex("0488ade4")),
    NetworkType.TESTNET: (bytes.fromhex("043587cf"), bytes.fromhex("04358394")),
    NetworkType.SIGNET: (bytes.fromhex("043587cf"), bytes.fromhex("04358394")),
    NetworkType.REGTEST: (bytes.fromhex("043587cf"), bytes.fromhex("04358394")),
}


class InvalidExtendedKey(ValueError):
    pass


class HDKey:
    """
    Hierarchical Deterministic Key for Bitcoin.
    Implements BIP32 derivation. A node without a private key can only
    derive non-hardened children.
    """

    def __init__(
        self,
        private_key: PrivateKey | None,
        chain_code: bytes,
        depth: int = 0,
        public_key: PublicKey | None = None,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
    ):
        if private_key is None and public_key is None:
            raise ValueError("HDKey needs a private or a public key")
        self._private_key = private_key
        self._public_key = private_key.public_key if private_key is not None else public_key
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number

    @property
    def private_key(self) -> PrivateKey | None:
        """Return the coincurve PrivateKey instance, None for public-only nodes."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.get_public_key_bytes())[:4]

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        private_key = PrivateKey(key_bytes)

        return cls(private_key, chain_code, depth=0)

    @classmethod
    def from_extended_key(
        cls, extended_key: str, network: NetworkType = NetworkType.MAINNET
    ) -> HDKey:
        """Parse a base58check serialized xpub/tpub (or xprv/tprv)."""
        try:
            raw = base58.b58decode_check(extended_key.strip())
        except ValueError as e:
            raise InvalidExtendedKey(f"Invalid extended key checksum: {e}") from e

        if len(raw) != 78:
            raise InvalidExtendedKey(f"Invalid extended key length: {len(raw)}")

        version = raw[:4]
        depth = raw[4]
        parent_fingerprint = raw[5:9]
        child_number = int.from_bytes(raw[9:13], "big")
        chain_code = raw[13:45]
        key_data = raw[45:78]

        public_version, private_version = XKEY_VERSIONS[network]
        if version == public_version:
            try:
                public_key = PublicKey(key_data)
            except ValueError as e:
                raise InvalidExtendedKey(f"Invalid public key in extended key: {e}") from e
            return cls(
                None,
                chain_code,
                depth=depth,
                public_key=public_key,
                parent_fingerprint=parent_fingerprint,
                child_number=child_number,
            )
        if version == private_version:
            if key_data[0] != 0:
                raise InvalidExtendedKey("Invalid private key padding in extended key")
            return cls(
                PrivateKey(key_data[1:]),
                chain_code,
                depth=depth,
                parent_fingerprint=parent_fingerprint,
                child_number=child_number,
            )

        raise InvalidExtendedKey(
            f"Extended key version {version.hex()} does not match network {network.value}"
        )

    def to_extended_key(self, network: NetworkType = NetworkType.MAINNET) -> str:
        public_version, private_version = XKEY_VERSIONS[network]
        if self._private_key is not None:
            version = private_version
            key_data = b"\x00" + self._private_key.secret
        else:
            version = public_version
            key_data = self.get_public_key_bytes()

        raw = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(raw).decode("ascii")

    def neuter(self) -> HDKey:
        """Public-only copy of this node."""
        return HDKey(
            None,
            self.chain_code,
            depth=self.depth,
            public_key=self._public_key,
            parent_fingerprint=self.parent_fingerprint,
            child_number=self.child_number,
        )

    def derive(self, path: str | DerivationPath) -> HDKey:
        """
        Derive child key from path notation (e.g., "M/9999'/0/5").
        ' indicates hardened derivation. An "M" rooted path returns the
        public-only node, an "m" rooted path requires a private node.
        """
        path = DerivationPath.parse(path)

        if not path.public and not self.is_private:
            raise InvalidPath(f"Cannot derive private path {path} from a public key")

        key = self
        for step in path.steps:
            key = key._derive_child(step.child_number)

        if path.public and key.is_private:
            return key.neuter()
        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        hardened = index >= HARDENED

        if hardened:
            if self._private_key is None:
                raise InvalidPath(
                    f"Cannot derive hardened child {index - HARDENED}' from a public key"
                )
            priv_bytes = self._private_key.secret
            data = b"\x00" + priv_bytes + index.to_bytes(4, "big")
        else:
            pub_bytes = self._public_key.format(compressed=True)
            data = pub_bytes + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        offset_int = int.from_bytes(key_offset, "big")
        if offset_int >= SECP256K1_N:
            raise ValueError("Invalid child key")

        if self._private_key is None:
            child_public_key = self._public_key.add(key_offset)
            return HDKey(
                None,
                child_chain,
                depth=self.depth + 1,
                public_key=child_public_key,
                parent_fingerprint=self.fingerprint,
                child_number=index,
            )

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise ValueError("Invalid child key")

        child_key_bytes = child_key_int.to_bytes(32, "big")
        child_private_key = PrivateKey(child_key_bytes)

        return HDKey(
            child_private_key,
            child_chain,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
        )

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        if self._private_key is None:
            raise ValueError("Public-only key has no private key")
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)


def normalize_mnemonic(mnemonic: str) -> str:
    """Clean up copy/paste damage: surrounding whitespace, doubled spaces, line breaks."""
    return " ".join(mnemonic.split())


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert BIP39 mnemonic to seed.
    PBKDF2-HMAC-SHA512 with 2048 rounds over the NFKD-normalized phrase.
    """
    from hashlib import pbkdf2_hmac

    mnemonic_bytes = unicodedata.normalize("NFKD", mnemonic).encode("utf-8")
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase).encode("utf-8")

    seed = pbkdf2_hmac("sha512", mnemonic_bytes, salt, 2048, dklen=64)
    return seed
