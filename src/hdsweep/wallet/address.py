"""
Bitcoin script and address utilities for P2SH multisig.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

import base58
import bech32

from hdsweep.config import NetworkType
from hdsweep.constants import (
    OP_1,
    OP_CHECKMULTISIG,
    OP_EQUAL,
    OP_HASH160,
    OP_PUSHDATA1,
    OP_PUSHDATA2,
)

# Base58 version bytes: (P2PKH, P2SH)
BASE58_VERSIONS: dict[NetworkType, tuple[int, int]] = {
    NetworkType.MAINNET: (0x00, 0x05),
    NetworkType.TESTNET: (0x6F, 0xC4),
    NetworkType.SIGNET: (0x6F, 0xC4),
    NetworkType.REGTEST: (0x6F, 0xC4),
}

BECH32_HRPS: dict[NetworkType, str] = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}


class InvalidAddress(ValueError):
    pass


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def sort_multisig_keys(pubkeys: Iterable[bytes]) -> list[bytes]:
    """
    Canonical multisig key order: byte-lexicographic on the compressed keys.

    Both address generation and signing go through this function, so the
    redeem script and the signature order always agree.
    """
    return sorted(pubkeys)


def push_data(data: bytes) -> bytes:
    """Minimal script push for ``data``."""
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    raise ValueError(f"Push data too large: {length} bytes")


def multisig_redeem_script(required: int, pubkeys: list[bytes]) -> bytes:
    """
    OP_m <pubkey>... OP_n OP_CHECKMULTISIG

    Keys are used in the order given; callers sort them first.
    """
    if not 1 <= required <= len(pubkeys) <= 16:
        raise ValueError(f"Invalid multisig policy: {required}-of-{len(pubkeys)}")

    script = bytes([OP_1 + required - 1])
    for pubkey in pubkeys:
        if len(pubkey) != 33:
            raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")
        script += push_data(pubkey)
    script += bytes([OP_1 + len(pubkeys) - 1, OP_CHECKMULTISIG])
    return script


def parse_multisig_script(script: bytes) -> tuple[int, list[bytes]]:
    """Return (required, pubkeys) of a bare multisig script."""
    if len(script) < 3 or script[-1] != OP_CHECKMULTISIG:
        raise ValueError("Not a multisig script")

    required = script[0] - OP_1 + 1
    total = script[-2] - OP_1 + 1
    if not 1 <= required <= total <= 16:
        raise ValueError("Not a multisig script")

    pubkeys = []
    offset = 1
    for _ in range(total):
        length = script[offset]
        pubkeys.append(script[offset + 1 : offset + 1 + length])
        offset += 1 + length

    if offset != len(script) - 2:
        raise ValueError("Malformed multisig script")

    return required, pubkeys


def script_to_p2sh_scriptpubkey(script: bytes) -> bytes:
    """OP_HASH160 <20-byte-scripthash> OP_EQUAL"""
    return bytes([OP_HASH160, 0x14]) + hash160(script) + bytes([OP_EQUAL])


def script_to_p2sh_address(script: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """Base58check P2SH address for a redeem script."""
    version = BASE58_VERSIONS[network][1]
    return base58.b58encode_check(bytes([version]) + hash160(script)).decode("ascii")


def address_to_scriptpubkey(address: str, network: NetworkType = NetworkType.MAINNET) -> bytes:
    """
    Convert a Bitcoin address to scriptPubKey.

    Supports:
    - P2WPKH / P2WSH (bech32, witness v0)
    - P2PKH
    - P2SH
    """
    hrp = BECH32_HRPS[network]
    if address.lower().startswith(hrp + "1"):
        witver, witprog = bech32.decode(hrp, address)
        if witver is None or witprog is None:
            raise InvalidAddress(f"Invalid bech32 address: {address}")

        program = bytes(witprog)
        if witver == 0 and len(program) in (20, 32):
            return bytes([0x00, len(program)]) + program

        raise InvalidAddress(f"Unsupported witness program v{witver} in {address}")

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise InvalidAddress(f"Invalid address {address}: {e}") from e

    if len(decoded) != 21:
        raise InvalidAddress(f"Invalid address payload length: {address}")

    version, payload = decoded[0], decoded[1:]
    p2pkh_version, p2sh_version = BASE58_VERSIONS[network]

    if version == p2pkh_version:
        # OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return bytes([0x76, 0xA9, 0x14]) + payload + bytes([0x88, 0xAC])
    if version == p2sh_version:
        return bytes([OP_HASH160, 0x14]) + payload + bytes([OP_EQUAL])

    raise InvalidAddress(f"Address {address} does not belong to {network.value}")
