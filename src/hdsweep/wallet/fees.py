"""
Static, size-based fee estimation for sweep transactions.

The scriptSigs are not known before signing and DER signatures vary in
length, so every input is padded to the largest possible 2-of-3 scriptSig.
"""

from __future__ import annotations

import math

from hdsweep.constants import (
    MAX_SIGNATURE_SIZE,
    MULTISIG_REDEEM_SCRIPT_SIZE,
    REQUIRED_SIGNATURES,
)
from hdsweep.wallet.address import push_data
from hdsweep.wallet.transaction import UnsignedTransaction, varint

# OP_0 <sig> <sig> <redeemScript>
MULTISIG_SCRIPT_SIG_SIZE = (
    1
    + REQUIRED_SIGNATURES * (1 + MAX_SIGNATURE_SIZE)
    + len(push_data(bytes(MULTISIG_REDEEM_SCRIPT_SIZE)))
)

# txid + vout + scriptSig length + scriptSig + sequence
MULTISIG_INPUT_SIZE = (
    32 + 4 + len(varint(MULTISIG_SCRIPT_SIG_SIZE)) + MULTISIG_SCRIPT_SIG_SIZE + 4
)

# version + locktime
TX_OVERHEAD_SIZE = 4 + 4


def estimate_tx_size(input_count: int, output_scripts: list[bytes]) -> int:
    """Serialized size of a fully signed 2-of-3 P2SH sweep."""
    size = TX_OVERHEAD_SIZE
    size += len(varint(input_count)) + input_count * MULTISIG_INPUT_SIZE
    size += len(varint(len(output_scripts)))
    for script in output_scripts:
        size += 8 + len(varint(len(script))) + len(script)
    return size


class FeeEstimator:
    """Fee = size rounded up to whole kilobytes x fee_per_kb."""

    def __init__(self, fee_per_kb: int):
        self.fee_per_kb = fee_per_kb

    def estimate_size(self, tx: UnsignedTransaction) -> int:
        return estimate_tx_size(len(tx.inputs), [out.script_pubkey for out in tx.outputs])

    def estimate_fee(self, tx: UnsignedTransaction) -> int:
        size_kb = math.ceil(self.estimate_size(tx) / 1000)
        return size_kb * self.fee_per_kb
