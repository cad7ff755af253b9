"""
Bitcoin transaction signing for legacy P2SH 2-of-3 multisig inputs.
"""

from __future__ import annotations

import struct

from coincurve import PublicKey
from loguru import logger

from hdsweep.constants import OP_0, SIGHASH_ALL
from hdsweep.errors import InvalidPath, SigningFailure
from hdsweep.wallet.address import parse_multisig_script, push_data, sort_multisig_keys
from hdsweep.wallet.bip32 import HDKey
from hdsweep.wallet.keys import KeyDerivationManager
from hdsweep.wallet.transaction import (
    SignedTransaction,
    UnsignedTransaction,
    deserialize_transaction,
    hash256,
)


def compute_legacy_sighash(
    tx: UnsignedTransaction,
    input_index: int,
    script_code: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Pre-segwit signature hash: the transaction with every scriptSig emptied
    except the signed input's, which carries ``script_code``.
    """
    if input_index >= len(tx.inputs):
        raise SigningFailure("Input index out of range")

    script_sigs = [b""] * len(tx.inputs)
    script_sigs[input_index] = script_code
    preimage = tx.serialize(script_sigs) + struct.pack("<I", sighash_type)
    return hash256(preimage)


def sign_input(
    tx: UnsignedTransaction,
    input_index: int,
    redeem_script: bytes,
    key: HDKey,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Sign one P2SH input with coincurve.

    Returns:
        DER-encoded signature with sighash type byte appended
    """
    if key.private_key is None:
        raise SigningFailure("Signing requires a private key")

    sighash = compute_legacy_sighash(tx, input_index, redeem_script, sighash_type)
    # The sighash is already SHA256d, hasher=None skips hashing
    signature = key.private_key.sign(sighash, hasher=None)
    return signature + bytes([sighash_type])


def verify_signature(signature: bytes, sighash: bytes, pubkey: bytes) -> bool:
    """Check a DER signature (sighash byte stripped) against a public key."""
    try:
        return PublicKey(pubkey).verify(signature, sighash, hasher=None)
    except ValueError:
        return False


def create_multisig_script_sig(signatures: list[bytes], redeem_script: bytes) -> bytes:
    """OP_0 <sig>... <redeemScript>; OP_0 eats the CHECKMULTISIG off-by-one."""
    script_sig = bytes([OP_0])
    for signature in signatures:
        script_sig += push_data(signature)
    script_sig += push_data(redeem_script)
    return script_sig


def parse_script_pushes(script: bytes) -> list[bytes]:
    """Split a push-only script into its pushed items (OP_0 becomes b"")."""
    items = []
    offset = 0
    while offset < len(script):
        opcode = script[offset]
        offset += 1
        if opcode == OP_0:
            items.append(b"")
            continue
        if opcode < 0x4C:
            length = opcode
        elif opcode == 0x4C:
            length = script[offset]
            offset += 1
        elif opcode == 0x4D:
            length = int.from_bytes(script[offset : offset + 2], "little")
            offset += 2
        else:
            raise ValueError(f"Unexpected opcode 0x{opcode:02x} in push-only script")
        items.append(script[offset : offset + length])
        offset += length
    return items


def verify_input_signatures(tx: UnsignedTransaction, input_index: int, script_sig: bytes) -> bool:
    """
    Check that a multisig scriptSig carries enough valid signatures, in
    redeem script key order, for the input it is attached to.
    """
    items = parse_script_pushes(script_sig)
    if len(items) < 2 or items[0] != b"":
        return False

    redeem_script = items[-1]
    signatures = items[1:-1]
    required, pubkeys = parse_multisig_script(redeem_script)
    if len(signatures) < required:
        return False

    key_iter = iter(pubkeys)
    for signature in signatures:
        if not signature:
            return False
        sighash = compute_legacy_sighash(tx, input_index, redeem_script, signature[-1])
        # CHECKMULTISIG walks keys forward only
        if not any(verify_signature(signature[:-1], sighash, pk) for pk in key_iter):
            return False
    return True


class MultisigSigner:
    """Signs every sweep input with the primary and the backup key."""

    def __init__(self, keys: KeyDerivationManager):
        self.keys = keys

    def sign_transaction(self, tx: UnsignedTransaction) -> bytes:
        logger.debug(f"Signing transaction with {len(tx.inputs)} inputs")

        script_sigs = []
        for index, inp in enumerate(tx.inputs):
            try:
                script_sigs.append(self._sign_input(tx, index))
            except SigningFailure:
                raise
            except (ValueError, InvalidPath) as e:
                raise SigningFailure(f"Input {index} ({inp.txid}:{inp.vout}): {e}") from e

        return tx.serialize(script_sigs)

    def _sign_input(self, tx: UnsignedTransaction, index: int) -> bytes:
        inp = tx.inputs[index]

        primary = self.keys.primary_private_key(inp.path)
        backup = self.keys.backup_private_key(inp.path)

        _, script_keys = parse_multisig_script(inp.redeem_script)
        signers = {
            primary.get_public_key_bytes(): primary,
            backup.get_public_key_bytes(): backup,
        }
        for pubkey in signers:
            if pubkey not in script_keys:
                raise SigningFailure(
                    f"Input {index}: derived key {pubkey.hex()} for {inp.path} "
                    "is not part of the redeem script"
                )

        sighash = compute_legacy_sighash(tx, index, inp.redeem_script)

        signatures = []
        for pubkey in sort_multisig_keys(signers):
            signature = sign_input(tx, index, inp.redeem_script, signers[pubkey])
            if not verify_signature(signature[:-1], sighash, pubkey):
                raise SigningFailure(
                    f"Input {index}: signature does not validate for {pubkey.hex()}"
                )
            signatures.append(signature)

        return create_multisig_script_sig(signatures, inp.redeem_script)

    def sign(self, tx: UnsignedTransaction, destination: str = "") -> SignedTransaction:
        raw = self.sign_transaction(tx)
        # Output must still decode as the transaction that was signed
        parsed = deserialize_transaction(raw)
        if len(parsed.inputs) != len(tx.inputs):
            raise SigningFailure("Signed transaction lost inputs")

        return SignedTransaction(
            raw=raw,
            fee=tx.fee,
            output_value=tx.output_value,
            input_count=len(tx.inputs),
            destination=destination,
        )
