# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Post-deployment verification.

Each check yields a ``Check`` with one of ``ok``, ``warn``, ``failed`` or
``skipped``. The report's overall status is the worst of them, so a
single failed check fails the whole verification.
"""

from __future__ import annotations

import os, time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from ..node.paths import SuiPaths
from ..node.rewards import check_payout_source, payout_source_path
from ..node.rpc_client import SuiRpcClient, http_status, request_faucet
from ..system import systemd
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import RpcError
from ..utils.helpers import format_sui, human_bytes, parse_env_file, timestamp_slug
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.ops.verify", stage="verify")

_SEVERITY = {"ok": 0, "skipped": 0, "warn": 1, "failed": 2}


@dataclass(frozen=True)
class Check:
    name: str
    status: str
    detail: str = ""


@dataclass
class VerificationReport:
    checks: List[Check] = field(default_factory=list)
    started: float = field(default_factory=time.time)

    def add(self, name: str, status: str, detail: str = "") -> Check:
        check = Check(name=name, status=status, detail=detail)
        self.checks.append(check)
        line = "[verify] %-28s %s %s"
        if status == "failed":
            log.error(line, name, status.upper(), detail)
        elif status == "warn":
            log.warning(line, name, status.upper(), detail)
        else:
            log.info(line, name, status.upper(), detail)
        return check

    @property
    def status(self) -> str:
        if not self.checks:
            return "skipped"
        worst = max(self.checks, key=lambda c: _SEVERITY.get(c.status, 2))
        return "ok" if worst.status == "skipped" else worst.status

    def counts(self) -> Dict[str, int]:
        out = {"ok": 0, "warn": 0, "failed": 0, "skipped": 0}
        for c in self.checks:
            out[c.status] = out.get(c.status, 0) + 1
        return out


# ---------- individual checks ----------

def _check_services(report: VerificationReport, runner: Runner, names: Sequence[str]) -> None:
    for name, state in systemd.service_states(runner, names).items():
        if state == "active":
            report.add(f"service:{name}", "ok", state)
        elif state == "unknown":
            report.add(f"service:{name}", "skipped", "dry-run")
        else:
            report.add(f"service:{name}", "failed", state)


def _check_endpoints(report: VerificationReport, explorer_port: int, http_get: Callable) -> None:
    endpoints = {
        "rpc": f"http://127.0.0.1:{CFG.PORT_RPC}",
        "explorer": f"http://127.0.0.1:{explorer_port}",
        "faucet": f"http://127.0.0.1:{CFG.PORT_FAUCET}",
        "metrics": f"http://127.0.0.1:{CFG.PORT_METRICS}/metrics",
    }
    for name, url in endpoints.items():
        code = http_get(url)
        if code is None:
            report.add(f"endpoint:{name}", "failed", f"{url} not reachable")
        else:
            # the RPC port answers GET with 405; any HTTP reply means it is serving
            report.add(f"endpoint:{name}", "ok", f"{url} -> HTTP {code}")


def _check_rpc(report: VerificationReport, rpc: SuiRpcClient) -> bool:
    try:
        chain = rpc.chain_identifier()
        report.add("rpc:chain_identifier", "ok", chain)
    except RpcError as exc:
        report.add("rpc:chain_identifier", "failed", str(exc))
        return False
    try:
        epoch = rpc.current_epoch() or {}
        report.add("rpc:current_epoch", "ok", str(epoch.get("epoch", "?")))
    except RpcError as exc:
        report.add("rpc:current_epoch", "warn", str(exc))
    try:
        state = rpc.latest_system_state() or {}
        n = len(state.get("activeValidators", []))
        report.add("rpc:system_state", "ok" if n else "warn", f"{n} active validators")
    except RpcError as exc:
        report.add("rpc:system_state", "failed", str(exc))
    return True


def _check_genesis_balance(report: VerificationReport, rpc: SuiRpcClient, address: Optional[str]) -> None:
    if not address:
        report.add("genesis:balance", "skipped", "no genesis address recorded")
        return
    try:
        balance = rpc.balance(address)
    except RpcError as exc:
        report.add("genesis:balance", "failed", str(exc))
        return
    if balance >= CFG.PREMINE_MIST:
        report.add("genesis:balance", "ok", f"{format_sui(balance)} at {address}")
    else:
        report.add("genesis:balance", "warn",
                   f"{format_sui(balance)} at {address}, expected at least {format_sui(CFG.PREMINE_MIST)}")


def _check_faucet(report: VerificationReport, recipient: Optional[str], faucet: Callable) -> None:
    if not recipient:
        report.add("faucet:request", "skipped", "no recipient address")
        return
    try:
        faucet(CFG.FAUCET_URL, recipient)
        report.add("faucet:request", "ok", f"gas sent to {recipient}")
    except RpcError as exc:
        report.add("faucet:request", "failed", str(exc))


def _check_validator(report: VerificationReport, rpc: SuiRpcClient, validator: Optional[str]) -> None:
    if not validator:
        report.add("validator:active", "skipped", "no validator address recorded")
        return
    try:
        active = rpc.active_validator_addresses()
    except RpcError as exc:
        report.add("validator:active", "failed", str(exc))
        return
    if validator.lower() in active:
        report.add("validator:active", "ok", validator)
    else:
        report.add("validator:active", "failed", f"{validator} not in activeValidators")


def _check_payout(report: VerificationReport, paths: SuiPaths) -> None:
    src = payout_source_path(paths.source_dir)
    if not src.exists():
        report.add("payout:source", "skipped", "sui source not present (release install)")
        return
    res = check_payout_source(src)
    report.add("payout:source", res.status, res.reason or "custom payout rates detected")


def _check_journal(report: VerificationReport, runner: Runner, names: Sequence[str]) -> None:
    if runner.which("journalctl") is None:
        report.add("logs:journal", "skipped", "journalctl not available")
        return
    for name in names:
        res = runner.try_run(["journalctl", "-u", name, "--since", "1 hour ago", "--no-pager"])
        if res.dry_run:
            report.add(f"logs:{name}", "skipped", "dry-run")
            continue
        text = res.stdout.lower().splitlines()
        errors = sum(1 for line in text if "error" in line)
        warnings = sum(1 for line in text if "warn" in line)
        status = "warn" if errors else "ok"
        report.add(f"logs:{name}", status, f"{errors} errors, {warnings} warnings in the last hour")


def dir_size(path: str | os.PathLike) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for f in files:
            try:
                total += os.lstat(os.path.join(root, f)).st_size
            except OSError:
                continue
    return total


def _check_performance(report: VerificationReport, paths: SuiPaths) -> None:
    mem = psutil.virtual_memory().percent
    report.add("perf:memory", "warn" if mem > CFG.MEMORY_WARN_PCT else "ok", f"{mem:.1f}% used")

    disk_root = paths.home if paths.home.exists() else Path("/")
    disk = psutil.disk_usage(str(disk_root)).percent
    report.add("perf:disk", "warn" if disk > CFG.DISK_WARN_PCT else "ok", f"{disk:.1f}% used")

    if hasattr(os, "getloadavg"):
        load1, load5, load15 = os.getloadavg()
        report.add("perf:load", "ok", f"{load1:.2f} {load5:.2f} {load15:.2f}")
    if paths.home.exists():
        report.add("perf:data_dir", "ok", human_bytes(dir_size(paths.home)))


# ---------- entry points ----------

def verify_deployment(paths: SuiPaths, runner: Runner, rpc: Optional[SuiRpcClient] = None,
                      explorer_port: int = CFG.PORT_EXPLORER, services: Sequence[str] = systemd.SERVICE_ORDER,
                      http_get: Callable[[str], Optional[int]] = http_status,
                      faucet: Callable = request_faucet, request_gas: bool = True,
                      journal: bool = True) -> VerificationReport:
    rpc = rpc or SuiRpcClient()
    report = VerificationReport()
    info = parse_env_file(paths.account_info)
    genesis_addr = info.get("GENESIS_ACCOUNT_ADDRESS")
    validator_addr = info.get("VALIDATOR_ADDRESS")

    _check_services(report, runner, services)
    _check_endpoints(report, explorer_port, http_get)
    if _check_rpc(report, rpc):
        _check_genesis_balance(report, rpc, genesis_addr)
        _check_validator(report, rpc, validator_addr)
    if request_gas:
        _check_faucet(report, genesis_addr, faucet)
    _check_payout(report, paths)
    if journal:
        _check_journal(report, runner, services)
    _check_performance(report, paths)

    c = report.counts()
    log.info("[verify] Done: %s (%d ok, %d warn, %d failed, %d skipped)",
             report.status.upper(), c["ok"], c["warn"], c["failed"], c["skipped"])
    return report


def write_health_report(report: VerificationReport, out_dir: str | os.PathLike) -> Path:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    target = out / f"sui_health_report_{timestamp_slug(report.started)}.txt"
    lines = [
        f"{CFG.NETWORK_LABEL} health report",
        f"Generated: {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(report.started))}",
        f"Overall: {report.status.upper()}",
        "",
    ]
    for c in report.checks:
        lines.append(f"[{c.status.upper():<7}] {c.name}: {c.detail}")
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    log.info("[verify] Health report written to %s", target)
    return target
