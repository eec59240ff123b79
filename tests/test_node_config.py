# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import pytest
import yaml

from conftest import FakeRunner
from suideploy.node import node_config
from suideploy.utils import config as CFG

VALIDATOR = "0x" + "cd" * 32


def _ports(doc):
    return {v for k, v in doc.items() if k.endswith("-address") and isinstance(v, str)}


def test_standard_validator_config(sui_paths):
    doc = node_config.validator_config(sui_paths, VALIDATOR)
    assert doc["validator-address"] == VALIDATOR
    assert doc["network-address"] == "/ip4/0.0.0.0/tcp/8080"
    assert doc["metrics-address"] == f"0.0.0.0:{CFG.PORT_METRICS}"
    assert doc["account-key-pair"]["path"] == str(sui_paths.account_key)
    assert "json-rpc-address" not in doc


def test_isolated_variant_moves_client_ports(sui_paths):
    full = node_config.fullnode_config(sui_paths)
    iso = node_config.validator_config(sui_paths, VALIDATOR, variant="isolated")
    assert iso["json-rpc-address"] == "127.0.0.1:9002"
    assert iso["metrics-address"] == "0.0.0.0:9185"
    assert iso["p2p-config"]["listen-address"] == "0.0.0.0:8085"
    # nothing the validator listens on may collide with the co-hosted fullnode
    assert not _ports(iso) & _ports(full)
    assert iso["p2p-config"]["listen-address"] != full["p2p-config"]["listen-address"]


def test_unknown_variant():
    with pytest.raises(ValueError):
        node_config.validator_config(None, VALIDATOR, variant="archive")


def test_faucet_config_points_at_local_rpc(sui_paths):
    doc = node_config.faucet_config(sui_paths, VALIDATOR)
    assert doc["port"] == 5003
    assert doc["admin_rpc_url"] == "http://127.0.0.1:9000"
    assert doc["funding_account"] == VALIDATOR
    assert doc["database_url"] == f"sqlite:{sui_paths.faucet_db}"


def test_write_node_configs(sui_paths):
    runner = FakeRunner()
    written = node_config.write_node_configs(sui_paths, runner, VALIDATOR, VALIDATOR)
    assert written == [sui_paths.validator_config, sui_paths.fullnode_config, sui_paths.faucet_config]
    text = sui_paths.fullnode_config.read_text()
    assert text.startswith("# Full Node Configuration for Custom Sui Network\n")
    assert yaml.safe_load(text)["json-rpc-address"] == "0.0.0.0:9000"
    assert node_config.load_yaml(sui_paths.validator_config)["validator-address"] == VALIDATOR
