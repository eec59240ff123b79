# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import psutil

from ..node.paths import SuiPaths
from ..node.rpc_client import SuiRpcClient
from ..node.sui_cli import SuiCli
from ..system import systemd
from ..system.ports import SERVICE_PORTS, is_listening
from ..system.shell import Runner
from ..utils.errors import RpcError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.ops.status", stage="status")

_PROCESS_NAMES = ("sui", "sui-node", "sui-faucet", "node")


@dataclass
class StatusReport:
    sui_version: Optional[str] = None
    processes: List[Tuple[int, str]] = field(default_factory=list)
    ports: Dict[str, bool] = field(default_factory=dict)
    chain_id: Optional[str] = None
    active_address: Optional[str] = None
    gas_price: Optional[int] = None
    tx_blocks: Optional[int] = None
    rpc_error: Optional[str] = None
    configs: Dict[str, bool] = field(default_factory=dict)
    services: Dict[str, str] = field(default_factory=dict)


def sui_processes() -> List[Tuple[int, str]]:
    found = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        if name in _PROCESS_NAMES:
            found.append((int(proc.info["pid"]), name))
    return sorted(found)


def collect_status(paths: SuiPaths, runner: Runner, rpc: Optional[SuiRpcClient] = None) -> StatusReport:
    rpc = rpc or SuiRpcClient()
    report = StatusReport()
    cli = SuiCli(runner)
    report.sui_version = cli.version()
    if report.sui_version:
        report.active_address = cli.active_address()
    report.processes = sui_processes()
    report.ports = {name: is_listening(port) for name, port in SERVICE_PORTS.items()}
    try:
        report.chain_id = rpc.chain_identifier()
        report.gas_price = rpc.reference_gas_price()
        report.tx_blocks = rpc.total_transaction_blocks()
    except RpcError as exc:
        report.rpc_error = str(exc)
        log.debug("[status] RPC unavailable: %s", exc)
    report.configs = {
        "genesis.blob": paths.genesis_blob.exists(),
        "validator.yaml": paths.validator_config.exists(),
        "fullnode.yaml": paths.fullnode_config.exists(),
        "faucet_config.yaml": paths.faucet_config.exists(),
    }
    report.services = systemd.service_states(runner)
    return report


def format_status(report: StatusReport) -> List[str]:
    lines = ["=== Sui Network Status ==="]
    lines.append(f"sui version : {report.sui_version or 'not installed'}")
    procs = ", ".join(f"{name}[{pid}]" for pid, name in report.processes) or "none"
    lines.append(f"processes   : {procs}")
    if report.active_address:
        lines.append(f"active addr : {report.active_address}")
    if report.chain_id:
        lines.append(f"chain id    : {report.chain_id}")
        if report.gas_price is not None:
            lines.append(f"gas price   : {report.gas_price} MIST")
        if report.tx_blocks is not None:
            lines.append(f"tx blocks   : {report.tx_blocks:,}")
    else:
        lines.append(f"chain id    : unavailable ({report.rpc_error or 'no answer'})")
    lines.append("")
    lines.append("Services:")
    for name, state in report.services.items():
        lines.append(f"  {name:<14} {state}")
    lines.append("Ports:")
    for name, port in SERVICE_PORTS.items():
        mark = "listening" if report.ports.get(name) else "closed"
        lines.append(f"  {name:<20} {port:<6} {mark}")
    lines.append("Config files:")
    for name, present in report.configs.items():
        lines.append(f"  {name:<20} {'present' if present else 'missing'}")
    return lines
