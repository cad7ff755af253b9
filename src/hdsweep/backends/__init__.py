"""
UTXO resolver implementations.

Available resolvers:
- BitcoinCoreResolver: Full node via Bitcoin Core RPC (no wallet, uses scantxoutset)
- MempoolResolver: Esplora / mempool.space API (third-party, no setup required)
"""

from hdsweep.backends.base import UTXOResolver
from hdsweep.backends.bitcoin_core import BitcoinCoreResolver
from hdsweep.backends.mempool import MempoolResolver

__all__ = [
    "BitcoinCoreResolver",
    "MempoolResolver",
    "UTXOResolver",
]
