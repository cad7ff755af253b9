"""
Bitcoin and sweep constants.

Size estimates follow the layout of a legacy P2SH 2-of-3 multisig spend:
- scriptSig: OP_0 <sig> <sig> <redeemScript>
- redeemScript: OP_2 <pubkey> <pubkey> <pubkey> OP_3 OP_CHECKMULTISIG
"""

from __future__ import annotations

# Standard P2PKH dust limit in Bitcoin Core
STANDARD_DUST_LIMIT = 546  # satoshis

# Static fee rate used when nothing else is configured
DEFAULT_FEE_PER_KB = 10_000  # satoshis per 1000 bytes

# Number of addresses generated and queried per discovery round
DEFAULT_SWEEP_BATCH_SIZE = 200

# Only the receive chain is ever generated by the wallet
RECEIVE_CHAIN = 0

# Multisig policy
REQUIRED_SIGNATURES = 2
TOTAL_KEYS = 3

# Largest DER signature (72 bytes) plus the sighash type byte is padded to 72
MAX_SIGNATURE_SIZE = 72
COMPRESSED_PUBKEY_SIZE = 33

# 1 (OP_2) + 3 * (1 + 33) + 1 (OP_3) + 1 (OP_CHECKMULTISIG)
MULTISIG_REDEEM_SCRIPT_SIZE = 1 + TOTAL_KEYS * (1 + COMPRESSED_PUBKEY_SIZE) + 1 + 1

SIGHASH_ALL = 1

# BIP32 hardened offset
HARDENED = 0x80000000

# Script opcodes
OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1 = 0x51
OP_EQUAL = 0x87
OP_HASH160 = 0xA9
OP_CHECKMULTISIG = 0xAE
