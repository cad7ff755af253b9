"""
Esplora / mempool.space REST API UTXO resolver.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection

import httpx
from loguru import logger

from hdsweep.backends.base import UTXOResolver
from hdsweep.config import NetworkType
from hdsweep.wallet.address import address_to_scriptpubkey
from hdsweep.wallet.models import UnspentOutput

DEFAULT_API_TIMEOUT = 30.0

# Parallel address lookups against the public API
MAX_CONCURRENT_REQUESTS = 5


class MempoolResolver(UTXOResolver):
    """
    UTXO resolver using the Esplora HTTP API (mempool.space, blockstream.info).
    Queries GET /address/{address}/utxo for every address in the batch.
    """

    def __init__(
        self,
        base_url: str = "https://mempool.space/api",
        network: NetworkType = NetworkType.MAINNET,
        timeout: float = DEFAULT_API_TIMEOUT,
        max_concurrent: int = MAX_CONCURRENT_REQUESTS,
    ):
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.client = httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def _get_address_utxos(self, address: str) -> list[UnspentOutput]:
        async with self._semaphore:
            response = await self.client.get(f"{self.base_url}/address/{address}/utxo")
            response.raise_for_status()
            entries = response.json()

        if not entries:
            return []

        script_pubkey = address_to_scriptpubkey(address, self.network).hex()
        return [
            UnspentOutput(
                txid=entry["txid"],
                vout=entry["vout"],
                value=int(entry["value"]),
                script_pubkey=script_pubkey,
            )
            for entry in entries
        ]

    async def resolve(self, addresses: Collection[str]) -> dict[str, list[UnspentOutput]]:
        addresses = list(addresses)
        results = await asyncio.gather(*(self._get_address_utxos(a) for a in addresses))

        found = {address: utxos for address, utxos in zip(addresses, results) if utxos}
        logger.debug(
            f"Queried {len(addresses)} addresses, found UTXOs on {len(found)} of them"
        )
        return found

    async def close(self) -> None:
        await self.client.aclose()
