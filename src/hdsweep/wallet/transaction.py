"""
Legacy (non-segwit) transaction encoding for P2SH multisig sweeps.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

from hdsweep.wallet.path import DerivationPath


@dataclass(frozen=True)
class SweepInput:
    """A discovered output being spent, with what is needed to sign it."""

    txid: str
    vout: int
    value: int
    script_pubkey: str
    address: str
    path: DerivationPath
    redeem_script: bytes
    sequence: int = 0xFFFFFFFF


@dataclass(frozen=True)
class TxOutput:
    """Transaction output."""

    address: str
    value: int
    script_pubkey: bytes


@dataclass
class UnsignedTransaction:
    inputs: list[SweepInput]
    outputs: list[TxOutput]
    fee: int = 0
    version: int = 1
    locktime: int = 0

    @property
    def input_value(self) -> int:
        return sum(inp.value for inp in self.inputs)

    @property
    def output_value(self) -> int:
        return sum(out.value for out in self.outputs)

    def serialize(self, script_sigs: list[bytes] | None = None) -> bytes:
        """Serialize with the given scriptSigs (empty scriptSigs when None)."""
        if script_sigs is None:
            script_sigs = [b""] * len(self.inputs)
        return serialize_transaction(
            self.version, self.inputs, script_sigs, self.outputs, self.locktime
        )


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    fee: int
    output_value: int
    input_count: int
    destination: str = ""
    txid: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "txid", hash256(self.raw)[::-1].hex())

    @property
    def hex(self) -> str:
        return self.raw.hex()


@dataclass(frozen=True)
class ParsedInput:
    txid: str
    vout: int
    script_sig: bytes
    sequence: int


@dataclass(frozen=True)
class ParsedOutput:
    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class ParsedTransaction:
    version: int
    inputs: list[ParsedInput]
    outputs: list[ParsedOutput]
    locktime: int


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def varint(n: int) -> bytes:
    """Encode integer as Bitcoin varint."""
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read varint, returning (value, new_offset)."""
    first = data[offset]
    if first < 0xFD:
        return first, offset + 1
    elif first == 0xFD:
        return struct.unpack("<H", data[offset + 1 : offset + 3])[0], offset + 3
    elif first == 0xFE:
        return struct.unpack("<I", data[offset + 1 : offset + 5])[0], offset + 5
    else:
        return struct.unpack("<Q", data[offset + 1 : offset + 9])[0], offset + 9


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """Serialize outpoint (txid:vout)."""
    # txid is in RPC format (big-endian), need to reverse for raw tx
    return bytes.fromhex(txid)[::-1] + struct.pack("<I", vout)


def serialize_output(out: TxOutput) -> bytes:
    return struct.pack("<Q", out.value) + varint(len(out.script_pubkey)) + out.script_pubkey


def serialize_transaction(
    version: int,
    inputs: list[SweepInput],
    script_sigs: list[bytes],
    outputs: list[TxOutput],
    locktime: int,
) -> bytes:
    if len(script_sigs) != len(inputs):
        raise ValueError("One scriptSig per input required")

    result = struct.pack("<I", version)

    result += varint(len(inputs))
    for inp, script_sig in zip(inputs, script_sigs):
        result += serialize_outpoint(inp.txid, inp.vout)
        result += varint(len(script_sig)) + script_sig
        result += struct.pack("<I", inp.sequence)

    result += varint(len(outputs))
    for out in outputs:
        result += serialize_output(out)

    result += struct.pack("<I", locktime)
    return result


def deserialize_transaction(tx_bytes: bytes) -> ParsedTransaction:
    """Parse a legacy serialized transaction."""
    try:
        offset = 0
        version = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[ParsedInput] = []
        for _ in range(input_count):
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32
            vout = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
            offset += 4
            script_len, offset = read_varint(tx_bytes, offset)
            script_sig = tx_bytes[offset : offset + script_len]
            offset += script_len
            sequence = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
            offset += 4
            inputs.append(ParsedInput(txid, vout, script_sig, sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[ParsedOutput] = []
        for _ in range(output_count):
            value = struct.unpack("<Q", tx_bytes[offset : offset + 8])[0]
            offset += 8
            script_len, offset = read_varint(tx_bytes, offset)
            outputs.append(ParsedOutput(value, tx_bytes[offset : offset + script_len]))
            offset += script_len

        locktime = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4
    except (IndexError, struct.error) as e:
        raise ValueError(f"Failed to parse transaction: {e}") from e

    if offset != len(tx_bytes):
        raise ValueError(f"Trailing data after transaction: {len(tx_bytes) - offset} bytes")

    return ParsedTransaction(version, inputs, outputs, locktime)
