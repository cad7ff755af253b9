"""
hdsweep - Recovery sweeper for 2-of-3 multisig HD wallets

Regenerates the wallet's P2SH addresses from the two user mnemonics and the
service extended public keys, discovers their unspent outputs and signs one
transaction moving everything to a destination address.
"""

__version__ = "0.1.0"

from hdsweep.config import ErrorPolicy, NetworkType, ServiceKey, SweepConfig
from hdsweep.errors import (
    InsufficientFundsForFee,
    InvalidPath,
    NoFundsFound,
    ResolverError,
    SigningFailure,
    SweepError,
    UnknownKeyIndex,
    UnknownNetwork,
)
from hdsweep.sweeper import WalletSweeper
from hdsweep.wallet.models import SweepData, UnspentOutput
from hdsweep.wallet.transaction import SignedTransaction

__all__ = [
    "ErrorPolicy",
    "InsufficientFundsForFee",
    "InvalidPath",
    "NetworkType",
    "NoFundsFound",
    "ResolverError",
    "ServiceKey",
    "SignedTransaction",
    "SigningFailure",
    "SweepConfig",
    "SweepData",
    "SweepError",
    "UnknownKeyIndex",
    "UnknownNetwork",
    "UnspentOutput",
    "WalletSweeper",
]
