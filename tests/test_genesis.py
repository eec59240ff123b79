# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import os
import stat

import pytest
import yaml

from conftest import FakeRunner
from suideploy.node import genesis
from suideploy.node.sui_cli import DRY_RUN_ADDRESS, SuiCli, parse_new_address
from suideploy.utils import config as CFG
from suideploy.utils.errors import GenesisError
from suideploy.utils.helpers import parse_env_file
from suideploy.wallet.keys import decode_suiprivkey

ADDR_A = "0x" + "a1" * 32
ADDR_B = "0x" + "b2" * 32


def test_parse_new_address_legacy_line():
    out = f"Created new keypair and saved it to keystore.\nCreated new keypair for address with scheme Secp256k1: [{ADDR_A}]"
    assert parse_new_address(out) == ADDR_A


def test_parse_new_address_table_form():
    out = (
        "╭──────────────────────────────────────────╮\n"
        f"│ address        │  {ADDR_B.upper().replace('0X', '0x')} │\n"
        "│ keyScheme      │  ed25519 │\n"
    )
    assert parse_new_address(out) == ADDR_B


def test_parse_new_address_without_address():
    with pytest.raises(GenesisError):
        parse_new_address("error: keystore locked")


def test_accounts_fall_back_to_local_keys(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", returncode=1, stderr="no client config")
    sui_paths.ensure()
    accts = genesis.create_accounts(SuiCli(runner), sui_paths)

    labels = [a.label for a in accts.accounts]
    assert labels == ["genesis", "faucet", "treasury"]
    assert set(accts.local_keys) == {"genesis", "faucet", "treasury"}
    assert accts.by_label("genesis").balance_mist == CFG.PREMINE_MIST
    assert accts.local_keys["faucet"].scheme == "ed25519"

    env = parse_env_file(sui_paths.accounts_env)
    assert env["GENESIS_ADDRESS"] == accts.by_label("genesis").address
    assert parse_env_file(sui_paths.account_info)["GENESIS_ACCOUNT_ADDRESS"] == env["GENESIS_ADDRESS"]


def test_accounts_are_reused(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", stdout=f"Created new keypair for address [{ADDR_A}]")
    sui_paths.ensure()
    first = genesis.create_accounts(SuiCli(runner), sui_paths)
    calls = len(runner.calls)
    second = genesis.create_accounts(SuiCli(runner), sui_paths)
    assert [a.address for a in second.accounts] == [a.address for a in first.accounts]
    assert len(runner.calls) == calls


def test_stale_placeholder_addresses_are_not_reused(sui_paths):
    sui_paths.ensure()
    sui_paths.accounts_env.write_text(f"GENESIS_ADDRESS={DRY_RUN_ADDRESS}\nFAUCET_ADDRESS={ADDR_B}\n")
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", stdout=f"Created new keypair for address [{ADDR_A}]")
    accts = genesis.create_accounts(SuiCli(runner), sui_paths)
    assert accts.by_label("genesis").address == ADDR_A
    assert accts.by_label("faucet").address == ADDR_B
    assert DRY_RUN_ADDRESS not in sui_paths.accounts_env.read_text()


def test_dry_run_accounts_are_not_recorded(sui_paths):
    sui_paths.ensure()
    cli = SuiCli(FakeRunner(dry_run=True))
    accts = genesis.create_accounts(cli, sui_paths)
    assert {a.address for a in accts.accounts} == {DRY_RUN_ADDRESS}
    assert genesis.create_validator_account(cli, sui_paths, DRY_RUN_ADDRESS) == DRY_RUN_ADDRESS
    assert not sui_paths.accounts_env.exists()
    assert not sui_paths.account_info.exists()


def test_validator_falls_back_to_genesis_account(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", returncode=1)
    sui_paths.ensure()
    assert genesis.create_validator_account(SuiCli(runner), sui_paths, ADDR_A) == ADDR_A
    assert parse_env_file(sui_paths.account_info)["VALIDATOR_ADDRESS"] == ADDR_A


def _accounts():
    return [
        genesis.GenesisAccount("genesis", ADDR_A, CFG.PREMINE_MIST),
        genesis.GenesisAccount("treasury", ADDR_B, CFG.TREASURY_MIST),
    ]


def test_genesis_document_amounts_are_integer_mist():
    doc = genesis.build_genesis_config(_accounts(), ADDR_A, host="10.0.0.5", chain_start_ms=1_700_000_000_000)
    assert genesis.total_allocation(doc) == CFG.PREMINE_MIST + CFG.TREASURY_MIST
    for acct in doc["accounts"]:
        for obj in acct["gas_objects"]:
            assert isinstance(obj["balance"], int)
    validator = doc["validators"][0]
    assert validator["account_address"] == ADDR_A
    assert validator["network_address"] == f"/ip4/10.0.0.5/tcp/{CFG.PORT_VALIDATOR_NETWORK}"
    assert validator["next_epoch_stake"] == CFG.VALIDATOR_STAKE_MIST
    assert doc["chain_start_timestamp_ms"] == 1_700_000_000_000
    assert doc["epoch_duration_ms"] == 86_400_000


def test_rendered_genesis_parses_back(sui_paths):
    doc = genesis.build_genesis_config(_accounts(), ADDR_A, chain_start_ms=1)
    genesis.write_genesis_config(sui_paths, doc)
    text = sui_paths.genesis_config.read_text()
    assert text.startswith(genesis.GENESIS_HEADER)
    loaded = yaml.safe_load(text)
    assert loaded["accounts"][0]["gas_objects"][0]["balance"] == CFG.PREMINE_MIST


def test_run_genesis_fallback_chain(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "genesis", returncode=1, stderr="genesis failed")
    res = genesis.run_genesis(SuiCli(runner), sui_paths)
    assert (res.status, res.method) == ("warn", "minimal")
    assert sui_paths.genesis_yaml.read_text() == "epoch: 0\n"
    attempts = [c for c in runner.commands() if c[:2] == ("sui", "genesis")]
    assert "--with-faucet" in attempts[0]
    assert "--with-faucet" not in attempts[1]


def test_run_genesis_second_attempt(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "genesis", "-f", "--with-faucet", returncode=1)
    res = genesis.run_genesis(SuiCli(runner), sui_paths)
    assert res.method == "no_faucet"
    assert not sui_paths.genesis_yaml.exists()


def test_export_prefers_local_key(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", returncode=1)
    sui_paths.ensure()
    accts = genesis.create_accounts(SuiCli(runner), sui_paths)
    source = genesis.export_genesis_key(SuiCli(runner), sui_paths, accts.accounts[0].address,
                                        accts.local_keys["genesis"])
    assert source == "local"
    key = decode_suiprivkey(sui_paths.genesis_key_file.read_text())
    assert key.address == accts.accounts[0].address
    assert stat.S_IMODE(os.stat(sui_paths.genesis_key_file).st_mode) == 0o600


def test_export_without_material_fails(sui_paths):
    runner = FakeRunner()
    runner.respond("sui", "keytool", "export", returncode=1)
    sui_paths.ensure()
    with pytest.raises(GenesisError):
        genesis.export_genesis_key(SuiCli(runner), sui_paths, ADDR_A)
