"""
Sweep error taxonomy.

Derivation and path errors are fatal for the derivation that raised them.
ResolverError is localized to one key index scan by the discovery engine.
Everything else aborts the sweep and is surfaced to the caller.
"""

from __future__ import annotations


class SweepError(Exception):
    """Base class for all sweep failures."""


class UnknownNetwork(SweepError):
    pass


class UnknownKeyIndex(SweepError):
    def __init__(self, key_index: int):
        self.key_index = key_index
        super().__init__(f"Service key index {key_index} is unknown to us")


class InvalidPath(SweepError):
    pass


class ResolverError(SweepError):
    """UTXO lookup failed for one batch of addresses."""

    def __init__(self, message: str, key_index: int | None = None, offset: int | None = None):
        self.key_index = key_index
        self.offset = offset
        super().__init__(message)


class NoFundsFound(SweepError):
    def __init__(self, addresses_searched: int):
        self.addresses_searched = addresses_searched
        super().__init__(f"No funds found after searching through {addresses_searched} addresses")


class InsufficientFundsForFee(SweepError):
    def __init__(self, balance: int, fee: int, dust_threshold: int):
        self.balance = balance
        self.fee = fee
        self.dust_threshold = dust_threshold
        super().__init__(
            f"Balance of {balance} sats cannot cover fee of {fee} sats "
            f"and leave at least {dust_threshold} sats"
        )


class SigningFailure(SweepError):
    pass
