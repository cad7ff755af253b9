"""
Tests for the hdsweep command line.
"""

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from hdsweep.cli import app, load_service_keys
from hdsweep.config import ServiceKey
from hdsweep.wallet.multisig import MultisigAddressGenerator

from conftest import BACKUP_MNEMONIC, PRIMARY_MNEMONIC, PRIMARY_PASSPHRASE

runner = CliRunner()


class TestAddressCommand:
    def test_prints_address(
        self, service_keys: list[ServiceKey], generator: MultisigAddressGenerator
    ):
        result = runner.invoke(
            app,
            [
                "address",
                "--path",
                "M/9999'/0/2",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--passphrase",
                PRIMARY_PASSPHRASE,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
                "--service-key",
                f"0:{service_keys[0].extended_public_key}",
                "--service-key",
                f"9999:{service_keys[1].extended_public_key}",
                "--network",
                "testnet",
            ],
        )

        assert result.exit_code == 0, result.output
        descriptor = generator.address_for_path("M/9999'/0/2")
        assert descriptor.address in result.output
        assert descriptor.redeem_script.hex() in result.output

    def test_unknown_key_index(self, service_keys: list[ServiceKey]):
        result = runner.invoke(
            app,
            [
                "address",
                "--path",
                "M/1'/0/0",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
                "--service-key",
                f"0:{service_keys[0].extended_public_key}",
                "--network",
                "testnet",
            ],
        )
        assert result.exit_code == 1

    def test_missing_service_keys(self):
        result = runner.invoke(
            app,
            [
                "address",
                "--path",
                "M/0'/0/0",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
            ],
        )
        assert result.exit_code == 1

    def test_unknown_network(self, service_keys: list[ServiceKey]):
        result = runner.invoke(
            app,
            [
                "address",
                "--path",
                "M/0'/0/0",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
                "--service-key",
                f"0:{service_keys[0].extended_public_key}",
                "--network",
                "dogecoin",
            ],
        )
        assert result.exit_code == 1


class TestLoadServiceKeys:
    def test_file_and_options_keep_order(self, tmp_path: Path):
        keys_file = tmp_path / "keys.json"
        keys_file.write_text(json.dumps([{"keyIndex": 9999, "pubkey": "tpubA"}]))

        keys = load_service_keys(["0:tpubB"], keys_file)
        assert [(k.key_index, k.extended_public_key) for k in keys] == [
            (9999, "tpubA"),
            (0, "tpubB"),
        ]

    def test_invalid_file(self, tmp_path: Path):
        keys_file = tmp_path / "keys.json"
        keys_file.write_text("not json")
        with pytest.raises(typer.Exit):
            load_service_keys(None, keys_file)


class TestResolverLifecycle:
    def test_resolver_closed_when_keys_fail(
        self, monkeypatch: pytest.MonkeyPatch, resolver_factory, service_master
    ):
        """Keys that do not load must not leak the resolver's connections."""
        opened = []

        def fake_create_resolver(*args):
            opened.append(resolver_factory())
            return opened[-1]

        monkeypatch.setattr("hdsweep.cli.create_resolver", fake_create_resolver)
        mainnet_xpub = service_master.derive("M/0'").to_extended_key()

        result = runner.invoke(
            app,
            [
                "discover",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
                "--service-key",
                f"0:{mainnet_xpub}",
                "--network",
                "testnet",
            ],
        )

        assert result.exit_code == 1
        assert len(opened) == 1
        assert opened[0].closed

    def test_resolver_not_opened_without_service_keys(
        self, monkeypatch: pytest.MonkeyPatch, resolver_factory
    ):
        opened = []

        def fake_create_resolver(*args):
            opened.append(resolver_factory())
            return opened[-1]

        monkeypatch.setattr("hdsweep.cli.create_resolver", fake_create_resolver)

        result = runner.invoke(
            app,
            [
                "sweep",
                "--destination",
                "2N1111111111111111111111111111111111",
                "--primary-mnemonic",
                PRIMARY_MNEMONIC,
                "--backup-mnemonic",
                BACKUP_MNEMONIC,
                "--network",
                "testnet",
            ],
        )

        assert result.exit_code == 1
        assert opened == []
