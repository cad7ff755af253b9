"""
Gap-limit fund discovery.

Each service key index is scanned by its own KeyIndexScan state machine:

    SCANNING --next_batch()--> QUERY --record()--> CONTINUE (batch had funds)
                                     |                |
                                     |                +--next_batch()--> QUERY ...
                                     +--record()--> STOP (batch was empty)
                                     +--fail()----> STOP (resolver error)

The scan stops at the first batch with no funded address, so funds are
assumed never to sit past a full batch of consecutive unused addresses.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from enum import Enum

from loguru import logger

from hdsweep.backends.base import UTXOResolver
from hdsweep.config import ErrorPolicy, SweepConfig
from hdsweep.errors import ResolverError
from hdsweep.wallet.models import (
    AddressUTXOs,
    MultisigDescriptor,
    ScanError,
    SweepAggregate,
    SweepData,
    UnspentOutput,
)
from hdsweep.wallet.multisig import MultisigAddressGenerator


class ScanState(str, Enum):
    SCANNING = "scanning"
    QUERY = "query"
    CONTINUE = "continue"
    STOP = "stop"


class KeyIndexScan:
    """Batch-by-batch scan of M/keyIndex'/0/* with its own offset."""

    def __init__(self, key_index: int, generator: MultisigAddressGenerator, batch_size: int):
        self.key_index = key_index
        self.generator = generator
        self.batch_size = batch_size

        self.state = ScanState.SCANNING
        self.offset = 0
        self.addresses_searched = 0
        self.batches = 0
        self.found: dict[str, AddressUTXOs] = {}
        self.error: ScanError | None = None
        self._batch: dict[str, MultisigDescriptor] = {}

    @property
    def done(self) -> bool:
        return self.state == ScanState.STOP

    def _expect(self, *states: ScanState) -> None:
        if self.state not in states:
            raise RuntimeError(f"Key index {self.key_index} scan is in state {self.state.value}")

    def next_batch(self) -> dict[str, MultisigDescriptor]:
        """Generate the next batch of addresses at the current offset."""
        self._expect(ScanState.SCANNING, ScanState.CONTINUE)

        self._batch = self.generator.generate_batch(self.offset, self.batch_size, self.key_index)
        self.addresses_searched += len(self._batch)
        self.batches += 1
        self.state = ScanState.QUERY
        return self._batch

    def record(self, resolved: Mapping[str, list[UnspentOutput]]) -> dict[str, AddressUTXOs]:
        """Keep the funded addresses of the queried batch and decide whether to go on."""
        self._expect(ScanState.QUERY)

        found = {
            address: AddressUTXOs(
                path=descriptor.path,
                redeem_script=descriptor.redeem_script,
                utxos=tuple(resolved[address]),
            )
            for address, descriptor in self._batch.items()
            if resolved.get(address)
        }
        self.found.update(found)

        self.offset += self.batch_size
        self.state = ScanState.CONTINUE if found else ScanState.STOP
        return found

    def fail(self, error: Exception) -> ScanError:
        self._expect(ScanState.QUERY)
        self.error = ScanError(key_index=self.key_index, offset=self.offset, message=str(error))
        self.state = ScanState.STOP
        return self.error


class DiscoveryObserver:
    """Hooks called at scan transitions. The base class ignores everything."""

    def batch_generated(self, key_index: int, offset: int, count: int) -> None:
        pass

    def outputs_found(self, key_index: int, address: str, entry: AddressUTXOs) -> None:
        pass

    def scan_failed(self, key_index: int, error: ResolverError) -> None:
        pass

    def scan_finished(self, key_index: int, scan: KeyIndexScan) -> None:
        pass

    def discovery_finished(self, sweep_data: SweepData) -> None:
        pass


class LoggingObserver(DiscoveryObserver):
    def batch_generated(self, key_index: int, offset: int, count: int) -> None:
        logger.info(
            f"Generated {count} addresses using service key index {key_index} "
            f"(offset {offset}), starting fund discovery..."
        )

    def outputs_found(self, key_index: int, address: str, entry: AddressUTXOs) -> None:
        logger.info(f"Found {len(entry.utxos)} unspent outputs in address {address}")

    def scan_failed(self, key_index: int, error: ResolverError) -> None:
        logger.warning(f"Key index {key_index} scan stopped at offset {error.offset}: {error}")

    def scan_finished(self, key_index: int, scan: KeyIndexScan) -> None:
        logger.info(
            f"Key index {key_index} done: {scan.addresses_searched} addresses in "
            f"{scan.batches} batches, {len(scan.found)} funded"
        )

    def discovery_finished(self, sweep_data: SweepData) -> None:
        logger.info(
            f"Finished fund discovery: {sweep_data.total_balance} sats "
            f"(in {sweep_data.total_output_count} outputs) found when searching "
            f"{sweep_data.total_addresses_searched} addresses"
        )
        if sweep_data.errors:
            logger.warning(f"Discovery incomplete for {len(sweep_data.errors)} key index(es)")


class FundDiscoveryEngine:
    def __init__(
        self,
        generator: MultisigAddressGenerator,
        resolver: UTXOResolver,
        config: SweepConfig,
        observer: DiscoveryObserver | None = None,
    ):
        self.generator = generator
        self.resolver = resolver
        self.config = config
        if observer is None:
            observer = LoggingObserver() if config.logging else DiscoveryObserver()
        self.observer = observer

    async def discover(self, key_indices: Iterable[int] | None = None) -> SweepData:
        """
        Scan every service key index and return the aggregated SweepData.

        Resolver failures end only the affected key index scan unless the
        error policy is fail-fast, in which case the ResolverError propagates.
        """
        if key_indices is None:
            key_indices = self.generator.keys.key_indices
        key_indices = list(key_indices)

        aggregate = SweepAggregate()
        if self.config.concurrent_scans:
            # The first failing scan cancels its siblings
            try:
                async with asyncio.TaskGroup() as group:
                    for key_index in key_indices:
                        group.create_task(self.scan_key_index(key_index, aggregate))
            except ExceptionGroup as eg:
                raise eg.exceptions[0] from None
        else:
            # One key index at a time
            for key_index in key_indices:
                await self.scan_key_index(key_index, aggregate)

        sweep_data = aggregate.freeze()
        self.observer.discovery_finished(sweep_data)
        return sweep_data

    async def scan_key_index(self, key_index: int, aggregate: SweepAggregate) -> KeyIndexScan:
        scan = KeyIndexScan(key_index, self.generator, self.config.sweep_batch_size)

        while not scan.done:
            offset = scan.offset
            batch = scan.next_batch()
            self.observer.batch_generated(key_index, offset, len(batch))

            try:
                resolved = await self._resolve(batch, key_index, offset)
            except ResolverError as e:
                aggregate.merge({}, len(batch), [scan.fail(e)])
                self.observer.scan_failed(key_index, e)
                if self.config.error_policy == ErrorPolicy.FAIL_FAST:
                    raise
                break

            found = scan.record(resolved)
            for address, entry in found.items():
                self.observer.outputs_found(key_index, address, entry)
            aggregate.merge(found, len(batch))

        self.observer.scan_finished(key_index, scan)
        return scan

    async def _resolve(
        self, batch: Mapping[str, MultisigDescriptor], key_index: int, offset: int
    ) -> Mapping[str, list[UnspentOutput]]:
        timeout = self.config.resolver_timeout
        try:
            return await asyncio.wait_for(self.resolver.resolve(list(batch)), timeout)
        except asyncio.TimeoutError as e:
            raise ResolverError(
                f"UTXO lookup timed out after {timeout}s", key_index=key_index, offset=offset
            ) from e
        except Exception as e:
            raise ResolverError(
                f"UTXO lookup failed: {type(e).__name__}: {e}", key_index=key_index, offset=offset
            ) from e
