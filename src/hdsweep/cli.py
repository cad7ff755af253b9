"""
hdsweep CLI - Discover and sweep the funds of a 2-of-3 multisig HD wallet.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from loguru import logger
from pydantic import ValidationError

from hdsweep.backends.base import UTXOResolver
from hdsweep.config import ErrorPolicy, ServiceKey, SweepConfig, get_settings
from hdsweep.errors import SweepError

if TYPE_CHECKING:
    from hdsweep.sweeper import WalletSweeper

app = typer.Typer(
    name="hdsweep",
    help="Recover funds from a 2-of-3 multisig HD wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None, name: str) -> str:
    if mnemonic_file:
        if not mnemonic_file.exists():
            logger.error(f"Mnemonic file not found: {mnemonic_file}")
            raise typer.Exit(1)
        mnemonic = mnemonic_file.read_text().strip()

    if not mnemonic:
        logger.error(f"{name} mnemonic required")
        raise typer.Exit(1)
    return mnemonic


def load_service_keys(
    service_key: list[str] | None, service_keys_file: Path | None
) -> list[ServiceKey]:
    """
    Service keys come as INDEX:XPUB options and/or a JSON file holding a list of
    {"keyIndex": 0, "pubkey": "xpub..."} objects. Order is preserved.
    """
    keys: list[ServiceKey] = []
    try:
        if service_keys_file:
            data = json.loads(service_keys_file.read_text())
            keys.extend(ServiceKey.model_validate(entry) for entry in data)
        for value in service_key or []:
            keys.append(ServiceKey.from_string(value))
    except (OSError, ValueError) as e:
        logger.error(f"Invalid service keys: {e}")
        raise typer.Exit(1)

    if not keys:
        logger.error("At least one service key required. Use --service-key or --service-keys-file")
        raise typer.Exit(1)
    return keys


def build_config(
    network: str,
    testnet: bool,
    batch_size: int,
    fee_per_kb: int,
    fail_fast: bool,
    concurrent: bool,
    resolver_timeout: float,
) -> SweepConfig:
    try:
        return SweepConfig(
            network=network,
            testnet=testnet,
            sweep_batch_size=batch_size,
            fee_per_kb=fee_per_kb,
            logging=True,
            error_policy=ErrorPolicy.FAIL_FAST if fail_fast else ErrorPolicy.CONTINUE,
            concurrent_scans=concurrent,
            resolver_timeout=resolver_timeout,
        )
    except (SweepError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)


def create_resolver(
    config: SweepConfig,
    backend_type: str,
    rpc_url: str,
    rpc_user: str,
    rpc_password: str,
    mempool_url: str,
) -> UTXOResolver:
    from hdsweep.backends.bitcoin_core import BitcoinCoreResolver
    from hdsweep.backends.mempool import MempoolResolver

    if backend_type == "bitcoin_core":
        return BitcoinCoreResolver(rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password)
    if backend_type == "mempool":
        return MempoolResolver(base_url=mempool_url, network=config.bitcoin_network)

    logger.error(f"Unknown backend: {backend_type}")
    raise typer.Exit(1)


_settings = get_settings()

PrimaryMnemonicOpt = typer.Option(None, "--primary-mnemonic", envvar="PRIMARY_MNEMONIC")
PrimaryMnemonicFileOpt = typer.Option(None, "--primary-mnemonic-file")
PassphraseOpt = typer.Option("", "--passphrase", envvar="PRIMARY_PASSPHRASE")
BackupMnemonicOpt = typer.Option(None, "--backup-mnemonic", envvar="BACKUP_MNEMONIC")
BackupMnemonicFileOpt = typer.Option(None, "--backup-mnemonic-file")
ServiceKeyOpt = typer.Option(None, "--service-key", "-k", help="INDEX:XPUB, repeatable")
ServiceKeysFileOpt = typer.Option(None, "--service-keys-file", help="JSON list of service keys")
NetworkOpt = typer.Option(_settings.network, "--network", "-n", help="Bitcoin network")
TestnetOpt = typer.Option(False, "--testnet", help="Use testnet for a mainnet network name")
BatchSizeOpt = typer.Option(_settings.sweep_batch_size, "--batch-size", help="Gap limit batch")
FeeOpt = typer.Option(_settings.fee_per_kb, "--fee-per-kb", help="Fee rate in sats/kB")
BackendOpt = typer.Option(_settings.backend, "--backend", "-b", help="bitcoin_core | mempool")
RpcUrlOpt = typer.Option(_settings.rpc_url, "--rpc-url", envvar="BITCOIN_RPC_URL")
RpcUserOpt = typer.Option(_settings.rpc_user, "--rpc-user", envvar="BITCOIN_RPC_USER")
RpcPasswordOpt = typer.Option(
    _settings.rpc_password, "--rpc-password", envvar="BITCOIN_RPC_PASSWORD"
)
MempoolUrlOpt = typer.Option(_settings.mempool_api_url, "--mempool-url", envvar="MEMPOOL_API_URL")
FailFastOpt = typer.Option(False, "--fail-fast", help="Abort discovery on the first lookup error")
ConcurrentOpt = typer.Option(False, "--concurrent", help="Scan service key indices in parallel")
TimeoutOpt = typer.Option(_settings.resolver_timeout, "--timeout", help="Lookup timeout (s)")
LogLevelOpt = typer.Option(_settings.log_level, "--log-level", "-l")


def _create_sweeper(
    primary_mnemonic: str | None,
    primary_mnemonic_file: Path | None,
    passphrase: str,
    backup_mnemonic: str | None,
    backup_mnemonic_file: Path | None,
    service_key: list[str] | None,
    service_keys_file: Path | None,
    config: SweepConfig,
    resolver_factory: Callable[[], UTXOResolver],
) -> WalletSweeper:
    """Load the wallet inputs, then open the resolver. The resolver is closed if the keys fail."""
    from hdsweep.sweeper import WalletSweeper

    primary = load_mnemonic(primary_mnemonic, primary_mnemonic_file, "Primary")
    backup = load_mnemonic(backup_mnemonic, backup_mnemonic_file, "Backup")
    keys = load_service_keys(service_key, service_keys_file)

    resolver = resolver_factory()
    try:
        return WalletSweeper(primary, passphrase, backup, keys, resolver, config)
    except (SweepError, ValueError) as e:
        logger.error(f"Failed to load wallet keys: {e}")
        asyncio.run(resolver.close())
        raise typer.Exit(1)


@app.command()
def discover(
    primary_mnemonic: str = PrimaryMnemonicOpt,
    primary_mnemonic_file: Path | None = PrimaryMnemonicFileOpt,
    passphrase: str = PassphraseOpt,
    backup_mnemonic: str = BackupMnemonicOpt,
    backup_mnemonic_file: Path | None = BackupMnemonicFileOpt,
    service_key: list[str] | None = ServiceKeyOpt,
    service_keys_file: Path | None = ServiceKeysFileOpt,
    network: str = NetworkOpt,
    testnet: bool = TestnetOpt,
    batch_size: int = BatchSizeOpt,
    fee_per_kb: int = FeeOpt,
    backend_type: str = BackendOpt,
    rpc_url: str = RpcUrlOpt,
    rpc_user: str = RpcUserOpt,
    rpc_password: str = RpcPasswordOpt,
    mempool_url: str = MempoolUrlOpt,
    fail_fast: bool = FailFastOpt,
    concurrent: bool = ConcurrentOpt,
    timeout: float = TimeoutOpt,
    log_level: str = LogLevelOpt,
) -> None:
    """Search the wallet's addresses for unspent outputs and report the balance."""
    setup_logging(log_level)

    config = build_config(network, testnet, batch_size, fee_per_kb, fail_fast, concurrent, timeout)
    resolver_factory = partial(
        create_resolver, config, backend_type, rpc_url, rpc_user, rpc_password, mempool_url
    )
    sweeper = _create_sweeper(
        primary_mnemonic,
        primary_mnemonic_file,
        passphrase,
        backup_mnemonic,
        backup_mnemonic_file,
        service_key,
        service_keys_file,
        config,
        resolver_factory,
    )

    asyncio.run(_discover(sweeper))


async def _discover(sweeper: WalletSweeper) -> None:
    try:
        sweep_data = await sweeper.discover_wallet_funds()
    except SweepError as e:
        logger.error(f"Fund discovery failed: {e}")
        raise typer.Exit(1)
    finally:
        await sweeper.close()

    summary = sweep_data.summary()
    balance = summary["balance"]
    print(f"\nBalance:            {balance:,} sats ({balance / 1e8:.8f} BTC)")
    print(f"Unspent outputs:    {summary['output_count']}")
    print(f"Addresses searched: {summary['addresses_searched']}")
    for address, entry in sweep_data.address_utxos.items():
        print(f"  {address}  {entry.path}  {entry.balance:>15,} sats")
    for error in summary["errors"]:
        print(f"  INCOMPLETE: {error}")


@app.command()
def sweep(
    destination: str = typer.Option(..., "--destination", "-d", help="Address to sweep to"),
    primary_mnemonic: str = PrimaryMnemonicOpt,
    primary_mnemonic_file: Path | None = PrimaryMnemonicFileOpt,
    passphrase: str = PassphraseOpt,
    backup_mnemonic: str = BackupMnemonicOpt,
    backup_mnemonic_file: Path | None = BackupMnemonicFileOpt,
    service_key: list[str] | None = ServiceKeyOpt,
    service_keys_file: Path | None = ServiceKeysFileOpt,
    network: str = NetworkOpt,
    testnet: bool = TestnetOpt,
    batch_size: int = BatchSizeOpt,
    fee_per_kb: int = FeeOpt,
    backend_type: str = BackendOpt,
    rpc_url: str = RpcUrlOpt,
    rpc_user: str = RpcUserOpt,
    rpc_password: str = RpcPasswordOpt,
    mempool_url: str = MempoolUrlOpt,
    fail_fast: bool = FailFastOpt,
    concurrent: bool = ConcurrentOpt,
    timeout: float = TimeoutOpt,
    log_level: str = LogLevelOpt,
) -> None:
    """Discover funds and print a signed transaction sweeping them to DESTINATION."""
    setup_logging(log_level)

    config = build_config(network, testnet, batch_size, fee_per_kb, fail_fast, concurrent, timeout)
    resolver_factory = partial(
        create_resolver, config, backend_type, rpc_url, rpc_user, rpc_password, mempool_url
    )
    sweeper = _create_sweeper(
        primary_mnemonic,
        primary_mnemonic_file,
        passphrase,
        backup_mnemonic,
        backup_mnemonic_file,
        service_key,
        service_keys_file,
        config,
        resolver_factory,
    )

    asyncio.run(_sweep(sweeper, destination))


async def _sweep(sweeper: WalletSweeper, destination: str) -> None:
    try:
        tx = await sweeper.sweep_wallet(destination)
    except (SweepError, ValueError) as e:
        logger.error(f"Sweep failed: {e}")
        raise typer.Exit(1)
    finally:
        await sweeper.close()

    print(f"\nSweeping {tx.output_value:,} sats from {tx.input_count} inputs to {destination}")
    print(f"Fee:  {tx.fee:,} sats")
    print(f"TXID: {tx.txid}")
    print("\nSigned transaction (broadcast it yourself):")
    print(tx.hex)


@app.command()
def address(
    path: str = typer.Option(..., "--path", "-p", help="Derivation path, e.g. M/0'/0/5"),
    primary_mnemonic: str = PrimaryMnemonicOpt,
    primary_mnemonic_file: Path | None = PrimaryMnemonicFileOpt,
    passphrase: str = PassphraseOpt,
    backup_mnemonic: str = BackupMnemonicOpt,
    backup_mnemonic_file: Path | None = BackupMnemonicFileOpt,
    service_key: list[str] | None = ServiceKeyOpt,
    service_keys_file: Path | None = ServiceKeysFileOpt,
    network: str = NetworkOpt,
    testnet: bool = TestnetOpt,
    log_level: str = LogLevelOpt,
) -> None:
    """Show the multisig address and redeem script for one derivation path."""
    from hdsweep.wallet.keys import KeyDerivationManager
    from hdsweep.wallet.multisig import MultisigAddressGenerator

    setup_logging(log_level)

    config = build_config(network, testnet, 1, 0, False, False, 60.0)
    primary = load_mnemonic(primary_mnemonic, primary_mnemonic_file, "Primary")
    backup = load_mnemonic(backup_mnemonic, backup_mnemonic_file, "Backup")
    keys = load_service_keys(service_key, service_keys_file)

    try:
        manager = KeyDerivationManager(primary, passphrase, backup, keys, config.bitcoin_network)
        descriptor = MultisigAddressGenerator(manager).address_for_path(path)
    except (SweepError, ValueError) as e:
        logger.error(f"Cannot derive address for {path}: {e}")
        raise typer.Exit(1)

    print(f"Path:          {descriptor.path}")
    print(f"Address:       {descriptor.address}")
    print(f"Redeem script: {descriptor.redeem_script.hex()}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
