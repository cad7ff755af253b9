"""
Base UTXO resolver interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection

from hdsweep.wallet.models import UnspentOutput


class UTXOResolver(ABC):
    """
    Looks up unspent outputs for a batch of addresses.
    Implementations must accept a full discovery batch in a single call.
    """

    @abstractmethod
    async def resolve(self, addresses: Collection[str]) -> dict[str, list[UnspentOutput]]:
        """Map each funded address to its unspent outputs.
        Addresses without outputs are left out of the result."""

    async def close(self) -> None:
        """Close backend connection"""
        pass
