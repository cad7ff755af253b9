"""
Wallet data models.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from hdsweep.wallet.path import DerivationPath


@dataclass(frozen=True)
class UnspentOutput:
    txid: str
    vout: int
    value: int  # satoshis
    script_pubkey: str  # hex


@dataclass(frozen=True)
class MultisigDescriptor:
    """A generated 2-of-3 P2SH address and what is needed to spend from it."""

    address: str
    redeem_script: bytes
    path: DerivationPath


@dataclass(frozen=True)
class AddressUTXOs:
    """Unspent outputs found on one generated address"""

    path: DerivationPath
    redeem_script: bytes
    utxos: tuple[UnspentOutput, ...]

    @property
    def balance(self) -> int:
        return sum(utxo.value for utxo in self.utxos)


@dataclass(frozen=True)
class ScanError:
    """A key index scan that ended early because the resolver failed."""

    key_index: int
    offset: int
    message: str


@dataclass(frozen=True)
class SweepData:
    """Result of fund discovery. Replaced wholesale, never updated in place."""

    address_utxos: MappingProxyType[str, AddressUTXOs]
    total_output_count: int
    total_balance: int
    total_addresses_searched: int
    errors: tuple[ScanError, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)

    def summary(self) -> dict[str, Any]:
        return {
            "balance": self.total_balance,
            "output_count": self.total_output_count,
            "addresses_searched": self.total_addresses_searched,
            "errors": [f"key index {e.key_index} @ {e.offset}: {e.message}" for e in self.errors],
        }


@dataclass
class SweepAggregate:
    """
    Append-only, address keyed accumulator shared by concurrent key index scans.
    An address is only ever generated once, so merges never conflict.
    """

    address_utxos: dict[str, AddressUTXOs] = field(default_factory=dict)
    addresses_searched: int = 0
    errors: list[ScanError] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def merge(
        self,
        found: dict[str, AddressUTXOs],
        addresses_searched: int = 0,
        errors: list[ScanError] | None = None,
    ) -> None:
        with self._lock:
            # All or nothing
            duplicates = self.address_utxos.keys() & found.keys()
            if duplicates:
                raise ValueError(f"Addresses already merged: {', '.join(sorted(duplicates))}")
            self.address_utxos.update(found)
            self.addresses_searched += addresses_searched
            if errors:
                self.errors.extend(errors)

    def freeze(self) -> SweepData:
        with self._lock:
            address_utxos = dict(self.address_utxos)
            return SweepData(
                address_utxos=MappingProxyType(address_utxos),
                total_output_count=sum(len(e.utxos) for e in address_utxos.values()),
                total_balance=sum(e.balance for e in address_utxos.values()),
                total_addresses_searched=self.addresses_searched,
                errors=tuple(self.errors),
            )
