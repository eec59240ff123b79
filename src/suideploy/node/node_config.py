# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .paths import SuiPaths
from ..utils import config as CFG
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.node_config", stage="node_config")

VARIANTS = ("standard", "isolated")


def validator_config(paths: SuiPaths, validator_address: str, variant: str = "standard") -> Dict[str, Any]:
    if variant not in VARIANTS:
        raise ValueError(f"unknown validator variant: {variant}")
    doc: Dict[str, Any] = {
        "validator-address": validator_address,
        "protocol-key-pair": {"path": str(paths.protocol_key)},
        "worker-key-pair": {"path": str(paths.worker_key)},
        "account-key-pair": {"path": str(paths.account_key)},
        "network-key-pair": {"path": str(paths.network_key)},
        "db-path": str(paths.validator_dir / "db"),
        "network-address": f"/ip4/0.0.0.0/tcp/{CFG.PORT_VALIDATOR_NETWORK}",
        "primary-network-address": f"/ip4/0.0.0.0/tcp/{CFG.PORT_VALIDATOR_PRIMARY}",
        "worker-network-address": f"/ip4/0.0.0.0/tcp/{CFG.PORT_VALIDATOR_WORKER}",
        "consensus-address": f"/ip4/0.0.0.0/tcp/{CFG.PORT_VALIDATOR_CONSENSUS}",
        "metrics-address": f"0.0.0.0:{CFG.PORT_METRICS}",
        "admin-interface-port": CFG.PORT_ADMIN,
        "commission-rate": CFG.VALIDATOR_COMMISSION_RATE,
        "gas-price": CFG.VALIDATOR_GAS_PRICE,
        "enable-event-processing": True,
        "grpc-load-shed": True,
        "grpc-concurrency-limit": 20000,
        "genesis": {"genesis-file-location": str(paths.genesis_blob)},
        "log-level": "info",
        "log-file": str(paths.logs_dir / "validator.log"),
    }
    if variant == "isolated":
        # co-hosted with the fullnode: every client-facing port moves off the shared defaults
        doc["json-rpc-address"] = f"127.0.0.1:{CFG.PORT_ISOLATED_RPC}"
        doc["websocket-address"] = f"127.0.0.1:{CFG.PORT_ISOLATED_WEBSOCKET}"
        doc["metrics-address"] = f"0.0.0.0:{CFG.PORT_ISOLATED_METRICS}"
        doc["p2p-config"] = {"listen-address": f"0.0.0.0:{CFG.PORT_ISOLATED_P2P}", "seed-peers": []}
    return doc


def fullnode_config(paths: SuiPaths) -> Dict[str, Any]:
    return {
        "db-path": str(paths.fullnode_dir / "db"),
        "json-rpc-address": f"0.0.0.0:{CFG.PORT_RPC}",
        "websocket-address": f"0.0.0.0:{CFG.PORT_WEBSOCKET}",
        "metrics-address": f"0.0.0.0:{CFG.PORT_METRICS}",
        "enable-event-processing": True,
        "enable-index-processing": True,
        "genesis": {"genesis-file-location": str(paths.genesis_blob)},
        "p2p-config": {"seed-peers": [], "listen-address": f"0.0.0.0:{CFG.PORT_P2P}"},
        "state-sync": {"interval-ms": 1000, "max-concurrent-downloads": 6},
        "log-level": "info",
        "log-file": str(paths.logs_dir / "fullnode.log"),
        "authority-store-pruning-config": {
            "num-latest-epoch-dbs-to-retain": 3,
            "epoch-db-pruning-period-secs": 3600,
            "num-epochs-to-retain": 2,
            "max-checkpoints-in-batch": 200,
            "max-transactions-in-batch": 1000,
        },
        "enable-websocket": True,
    }


def faucet_config(paths: SuiPaths, funding_account: str) -> Dict[str, Any]:
    return {
        "port": CFG.PORT_FAUCET,
        "host_ip": "0.0.0.0",
        "database_url": f"sqlite:{paths.faucet_db}",
        "max_request_per_second": CFG.FAUCET_MAX_REQ_PER_SECOND,
        "amount_mist": CFG.FAUCET_AMOUNT_MIST,
        "num_coins": CFG.FAUCET_NUM_COINS,
        "request_buffer_size": CFG.FAUCET_REQUEST_BUFFER,
        "max_request_per_hour": CFG.FAUCET_MAX_REQ_PER_HOUR,
        "admin_rpc_url": CFG.RPC_URL,
        "funding_account": funding_account,
    }


def render_yaml(doc: Dict[str, Any], title: str) -> str:
    header = f"# {title}\n# Modified payout distribution: 1% delegators, 1.5% validators\n\n"
    return header + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def load_yaml(path: str | os.PathLike) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def write_node_configs(paths: SuiPaths, runner, validator_address: str, funding_account: str,
                       variant: str = "standard") -> List[Path]:
    files = [
        (paths.validator_config, validator_config(paths, validator_address, variant),
         "Validator Configuration for Custom Sui Network"),
        (paths.fullnode_config, fullnode_config(paths), "Full Node Configuration for Custom Sui Network"),
        (paths.faucet_config, faucet_config(paths, funding_account), "Faucet Configuration"),
    ]
    written = []
    for target, doc, title in files:
        runner.write_file(target, render_yaml(doc, title))
        written.append(target)
        log.info("[config] Wrote %s", target)
    return written
