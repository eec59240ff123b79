# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import errno, socket
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

import psutil

from .shell import Runner
from ..utils import config as CFG
from ..utils.errors import DeployError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.ports")

SERVICE_PORTS: Dict[str, int] = {
    "validator-network": CFG.PORT_VALIDATOR_NETWORK,
    "validator-primary": CFG.PORT_VALIDATOR_PRIMARY,
    "validator-worker": CFG.PORT_VALIDATOR_WORKER,
    "validator-consensus": CFG.PORT_VALIDATOR_CONSENSUS,
    "p2p": CFG.PORT_P2P,
    "rpc": CFG.PORT_RPC,
    "websocket": CFG.PORT_WEBSOCKET,
    "metrics": CFG.PORT_METRICS,
    "faucet": CFG.PORT_FAUCET,
    "explorer": CFG.PORT_EXPLORER,
}


@dataclass
class PortFixReport:
    freed: Dict[int, List[int]] = field(default_factory=dict)
    still_busy: List[int] = field(default_factory=list)


def port_owners(port: int, runner: Runner | None = None) -> Set[int]:
    """PIDs listening on ``port``. Needs root for other users' sockets; falls back to lsof."""
    try:
        conns = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        if runner is None:
            return set()
        res = runner.try_run(["lsof", "-ti", f":{port}", "-sTCP:LISTEN"])
        return {int(tok) for tok in res.stdout.split() if tok.isdigit()}
    return {
        c.pid for c in conns
        if c.pid and c.laddr and c.laddr.port == port and c.status == psutil.CONN_LISTEN
    }


def is_port_free(port: int, host: str = "0.0.0.0") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, int(port)))
        except OSError as exc:
            if exc.errno in (errno.EADDRINUSE, errno.EACCES):
                return False
            raise
    return True


def is_listening(port: int, host: str = "127.0.0.1", timeout: float = 1.0) -> bool:
    try:
        with socket.create_connection((host, int(port)), timeout=timeout):
            return True
    except OSError:
        return False


def free_port(port: int, runner: Runner, grace_s: float = 3.0) -> List[int]:
    """Terminate whoever holds ``port``; escalate to kill after ``grace_s``."""
    pids = sorted(port_owners(port, runner))
    if runner.dry_run:
        runner.history.append(("free_port", port, tuple(pids)))
        return pids
    if not pids:
        if not is_port_free(port):
            log.warning("[ports] Port %s busy but owner unknown, using fuser", port)
            runner.try_run(["fuser", "-k", f"{port}/tcp"], privileged=True)
        return []

    procs = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            log.info("[ports] Stopping %s (pid %s) on port %s", proc.name(), pid, port)
            proc.terminate()
            procs.append(proc)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            runner.try_run(["kill", "-TERM", str(pid)], privileged=True)
    _, alive = psutil.wait_procs(procs, timeout=grace_s)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            runner.try_run(["kill", "-9", str(proc.pid)], privileged=True)
    return pids


def choose_explorer_port(preferred: int = CFG.PORT_EXPLORER, fallback: int = CFG.PORT_EXPLORER_FALLBACK,
                         runner: Runner | None = None, free_conflicts: bool = False) -> int:
    if is_port_free(preferred):
        return preferred
    if free_conflicts and runner is not None:
        free_port(preferred, runner)
        if runner.dry_run or is_port_free(preferred):
            return preferred
    if is_port_free(fallback):
        log.warning("[ports] Port %s is in use, explorer moves to %s", preferred, fallback)
        return fallback
    if free_conflicts and runner is not None:
        free_port(fallback, runner)
        if runner.dry_run or is_port_free(fallback):
            log.warning("[ports] Port %s is in use, explorer moves to %s", preferred, fallback)
            return fallback
    raise DeployError(f"explorer ports {preferred} and {fallback} are both in use")


def fix_port_conflicts(runner: Runner, ports: Iterable[int]) -> PortFixReport:
    report = PortFixReport()
    for port in ports:
        if is_port_free(port):
            continue
        report.freed[port] = free_port(port, runner)
        if not runner.dry_run and not is_port_free(port):
            report.still_busy.append(port)
            log.warning("[ports] Port %s is still busy after cleanup", port)
    return report
