"""
Bitcoin Core RPC UTXO resolver.
Uses scantxoutset, so no wallet has to be loaded on the node.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Collection
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from hdsweep.backends.base import UTXOResolver
from hdsweep.wallet.models import UnspentOutput

# Timeout for regular RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0

# Timeout for scantxoutset calls - mainnet scans can take 90+ seconds
SCAN_RPC_TIMEOUT = 300.0

# Bitcoin Core only runs one scantxoutset at a time
SCAN_MAX_RETRIES = 30
SCAN_BASE_DELAY = 0.5  # Base delay in seconds for exponential backoff
SCAN_STATUS_POLL_INTERVAL = 10.0  # seconds

# Addresses per scantxoutset request
SCAN_CHUNK_SIZE = 100


class BitcoinCoreResolver(UTXOResolver):
    """
    UTXO resolver backed by Bitcoin Core RPC.
    Scans the UTXO set with addr() descriptors.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8332",
        rpc_user: str = "",
        rpc_password: str = "",
        scan_timeout: float = SCAN_RPC_TIMEOUT,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.scan_timeout = scan_timeout
        auth = (rpc_user, rpc_password) if rpc_user or rpc_password else None
        self.client = httpx.AsyncClient(timeout=DEFAULT_RPC_TIMEOUT, auth=auth)
        # Separate client for long-running scans
        self._scan_client = httpx.AsyncClient(timeout=scan_timeout, auth=auth)
        self._request_id = 0

    async def _rpc_call(
        self,
        method: str,
        params: list | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> Any:
        """
        Make an RPC call to Bitcoin Core.

        Raises:
            ValueError: On RPC errors
            httpx.HTTPError: On connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        use_client = client or self.client

        try:
            response = await use_client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()

            if "error" in data and data["error"]:
                error_info = data["error"]
                error_code = error_info.get("code", "unknown")
                error_msg = error_info.get("message", str(error_info))
                raise ValueError(f"RPC error {error_code}: {error_msg}")

            return data.get("result")

        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise

    async def _scantxoutset_with_retry(self, descriptors: list[str]) -> dict[str, Any]:
        """
        Run scantxoutset, waiting for any scan already in progress on the node.

        Raises:
            ValueError: If no scan slot became available or the RPC failed
        """
        for attempt in range(SCAN_MAX_RETRIES):
            try:
                status = await self._rpc_call("scantxoutset", ["status"])
                if status is not None:
                    # Bitcoin Core returns progress as 0-100
                    progress = status.get("progress", 0) / 100.0
                    logger.debug(
                        f"Another scan in progress ({progress:.1%}), waiting... "
                        f"(attempt {attempt + 1}/{SCAN_MAX_RETRIES})"
                    )
                    await asyncio.sleep(SCAN_STATUS_POLL_INTERVAL)
                    continue

                logger.debug(f"Starting UTXO scan for {len(descriptors)} descriptor(s)...")
                result = await self._rpc_call(
                    "scantxoutset", ["start", descriptors], client=self._scan_client
                )
                if not result:
                    raise ValueError("scantxoutset returned no result")
                return result

            except ValueError as e:
                if "Scan already in progress" not in str(e):
                    logger.error(f"scantxoutset RPC error: {e}")
                    raise
                delay = SCAN_BASE_DELAY * (2**attempt) + random.uniform(0, 0.5)
                logger.debug(
                    f"Scan in progress (RPC error), retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{SCAN_MAX_RETRIES})"
                )
                await asyncio.sleep(delay)

        raise ValueError(f"scantxoutset failed after {SCAN_MAX_RETRIES} attempts")

    async def resolve(self, addresses: Collection[str]) -> dict[str, list[UnspentOutput]]:
        found: dict[str, list[UnspentOutput]] = {}
        addresses = list(addresses)

        for i in range(0, len(addresses), SCAN_CHUNK_SIZE):
            chunk = addresses[i : i + SCAN_CHUNK_SIZE]
            result = await self._scantxoutset_with_retry([f"addr({addr})" for addr in chunk])

            for utxo_data in result.get("unspents", []):
                # "addr(ADDRESS)#checksum"
                desc = utxo_data.get("desc", "").split("#")[0]
                if not (desc.startswith("addr(") and desc.endswith(")")):
                    logger.warning(f"Failed to parse address from descriptor: '{desc}'")
                    continue

                address = desc[5:-1]
                found.setdefault(address, []).append(
                    UnspentOutput(
                        txid=utxo_data["txid"],
                        vout=utxo_data["vout"],
                        value=int(Decimal(str(utxo_data["amount"])) * 100_000_000),
                        script_pubkey=utxo_data.get("scriptPubKey", ""),
                    )
                )

            logger.debug(
                f"Scanned {len(chunk)} addresses, found {len(result.get('unspents', []))} UTXOs"
            )

        return found

    async def close(self) -> None:
        await self.client.aclose()
        await self._scan_client.aclose()
