# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Deployment orchestrator.

A run walks the stage list of its mode in order. Every outcome lands in
the ledger so ``resume=True`` can skip what the previous run of the same
mode already finished. Required stages stop the run on failure; optional
ones (firewall, nginx, tls, verify) log and move on.
"""

from __future__ import annotations

import getpass, json, time
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..explorer.installer import ExplorerInstall, install_explorer
from ..node.build import ensure_binaries
from ..node.genesis import create_genesis
from ..node.node_config import write_node_configs
from ..node.paths import SuiPaths
from ..node.rpc_client import SuiRpcClient
from ..node.sui_cli import SuiCli
from ..storage import ledger
from ..system import firewall, systemd
from ..system.packages import install_dependencies
from ..system.ports import choose_explorer_port
from ..system.requirements import check_requirements
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import DeployError
from ..utils.helpers import parse_env_file
from ..utils.sui_logging import get_ctx_logger
from ..wallet.keys import generate_validator_keys
from ..web import nginx, tls
from . import verify

log = get_ctx_logger("suideploy.ops.deploy", stage="deploy")

MODES: Dict[str, Tuple[str, ...]] = {
    "full": ("requirements", "dependencies", "binaries", "genesis", "node_config",
             "validator_keys", "explorer", "systemd", "firewall", "start", "nginx",
             "tls", "helper_scripts", "verify"),
    "genesis": ("genesis", "node_config", "validator_keys"),
    "install": ("requirements", "dependencies", "binaries"),
    "explorer": ("explorer", "systemd", "start", "nginx"),
}
OPTIONAL_STAGES = frozenset({"firewall", "nginx", "tls", "verify"})

StageOutcome = Tuple[str, str]  # (status, detail)


@dataclass
class DeployOptions:
    mode: str = "full"
    resume: bool = False
    host: str = "127.0.0.1"
    domain: str = CFG.DEFAULT_DOMAIN
    email: Optional[str] = None
    tls: bool = False
    explorer: str = "official"          # "official" | "standalone"
    fix_ports: bool = False             # free port 3000 instead of moving to the fallback
    prefer_release: bool = True
    require_payout_patch: Optional[bool] = None  # None follows SUIDEPLOY_REQUIRE_PAYOUT_PATCH
    variant: str = "standard"
    user: Optional[str] = None
    report_dir: Optional[str] = None


@dataclass
class StageRecord:
    stage: str
    status: str
    detail: str = ""
    duration_s: float = 0.0


@dataclass
class DeployResult:
    run_id: str
    mode: str
    status: str
    stages: List[StageRecord] = field(default_factory=list)


def _script(lines: List[str]) -> str:
    return "\n".join(["#!/bin/bash", *lines, ""])


def write_helper_scripts(paths: SuiPaths, runner: Runner) -> List[str]:
    order = list(systemd.SERVICE_ORDER)
    start = _script(
        ['echo "Starting Sui network services..."']
        + [f"sudo systemctl start {name}\nsleep {CFG.SERVICE_SETTLE_S}" for name in order]
        + ['echo "Sui network started."', f'echo "RPC: {CFG.RPC_URL}"']
    )
    stop = _script(
        ['echo "Stopping Sui network services..."']
        + [f"sudo systemctl stop {name}" for name in reversed(order)]
        + ['echo "Sui network stopped."']
    )
    check = _script(
        ['echo "=== Sui Network Status ==="']
        + [f'printf "%-14s %s\\n" {name} "$(systemctl is-active {name})"' for name in order]
        + [
            'echo ""',
            'echo "=== RPC ==="',
            f"curl -s -X POST {CFG.RPC_URL} -H 'Content-Type: application/json' "
            "-d '{\"jsonrpc\":\"2.0\",\"id\":1,\"method\":\"sui_getChainIdentifier\",\"params\":[]}'",
            'echo ""',
        ]
    )
    written = []
    for target, body in ((paths.start_script, start), (paths.stop_script, stop), (paths.status_script, check)):
        runner.write_file(target, body, mode=0o755)
        written.append(str(target))
    return written


class Deployer:
    def __init__(self, paths: SuiPaths, runner: Runner, options: Optional[DeployOptions] = None,
                 rpc: Optional[SuiRpcClient] = None):
        self.paths = paths
        self.runner = runner
        self.options = options or DeployOptions()
        if self.options.mode not in MODES:
            raise DeployError(f"unknown deploy mode {self.options.mode!r} (choose from {', '.join(MODES)})")
        self.rpc = rpc or SuiRpcClient()
        self.cli = SuiCli(runner)
        self.explorer: Optional[ExplorerInstall] = None
        self.addresses: Dict[str, str] = {}
        self._stages: Dict[str, Callable[[], StageOutcome]] = {
            name: getattr(self, f"stage_{name}") for name in MODES["full"]
        }

    @property
    def stages(self) -> Tuple[str, ...]:
        return MODES[self.options.mode]

    # ---------- run loop ----------

    def _resume_set(self, run_id: str) -> set:
        if not self.options.resume:
            return set()
        prev = ledger.last_run(self.options.mode, exclude=run_id, include_dry_run=self.runner.dry_run)
        if prev is None:
            log.info("[deploy] Nothing to resume for mode %s", self.options.mode)
            return set()
        done = ledger.completed_stages(prev["id"])
        if done:
            log.info("[deploy] Resuming after run %s, skipping %s", prev["id"], ", ".join(sorted(done)))
        return done

    def run(self) -> DeployResult:
        mode = self.options.mode
        run_id = ledger.start_run(mode, dry_run=self.runner.dry_run)
        result = DeployResult(run_id=run_id, mode=mode, status="running")
        done = self._resume_set(run_id)
        log.info("[deploy] Run %s: mode=%s stages=%s%s", run_id, mode, len(self.stages),
                 " (dry-run)" if self.runner.dry_run else "")

        for name in self.stages:
            stage_log = log.bind(stage=name)
            if name in done:
                rec = StageRecord(stage=name, status="resumed", detail="completed by previous run")
                ledger.record_stage(run_id, name, rec.status, rec.detail)
                result.stages.append(rec)
                stage_log.info("[deploy] %s already done, skipping", name)
                continue

            stage_log.info("[deploy] >>> %s", name)
            started = time.monotonic()
            try:
                status, detail = self._stages[name]()
            except DeployError as exc:
                elapsed = time.monotonic() - started
                ledger.record_stage(run_id, name, "failed", str(exc), elapsed)
                result.stages.append(StageRecord(name, "failed", str(exc), elapsed))
                if name in OPTIONAL_STAGES:
                    stage_log.warning("[deploy] Optional stage %s failed: %s", name, exc)
                    continue
                stage_log.error("[deploy] Stage %s failed: %s", name, exc)
                ledger.finish_run(run_id, "failed")
                result.status = "failed"
                raise
            except Exception as exc:
                elapsed = time.monotonic() - started
                detail = f"{type(exc).__name__}: {exc}"
                ledger.record_stage(run_id, name, "failed", detail, elapsed)
                result.stages.append(StageRecord(name, "failed", detail, elapsed))
                stage_log.exception("[deploy] Stage %s crashed", name)
                ledger.finish_run(run_id, "failed")
                result.status = "failed"
                raise

            elapsed = time.monotonic() - started
            ledger.record_stage(run_id, name, status, detail, elapsed)
            result.stages.append(StageRecord(name, status, detail, elapsed))
            stage_log.info("[deploy] <<< %s %s %s (%.1fs)", name, status, detail, elapsed)

        degraded = any(r.status in ("failed", "warn") for r in result.stages)
        result.status = "warn" if degraded else "ok"
        ledger.finish_run(run_id, result.status)
        log.info("[deploy] Run %s finished: %s", run_id, result.status)
        return result

    # ---------- stages ----------

    def stage_requirements(self) -> StageOutcome:
        report = check_requirements(strict=True)
        for w in report.warnings:
            log.warning("[deploy] %s", w)
        return report.status, f"{report.os_name}, {report.memory_gb:.1f} GB RAM, {report.disk_free_gb:.0f} GB free"

    def stage_dependencies(self) -> StageOutcome:
        manager = install_dependencies(self.runner)
        return "ok", f"packages via {manager}"

    def stage_binaries(self) -> StageOutcome:
        res = ensure_binaries(self.runner, self.paths.home, prefer_release=self.options.prefer_release,
                              require_payout_patch=self.options.require_payout_patch)
        detail = f"{res.method}: {', '.join(res.binaries)}"
        if res.payout_status not in (None, "ok"):
            return "warn", detail + f" (payout patch check: {res.payout_status})"
        return "ok", detail

    def stage_genesis(self) -> StageOutcome:
        summary = create_genesis(self.cli, self.paths, host=self.options.host)
        self.addresses = {
            "validator": summary.validator_address,
            "funding": next((a.address for a in summary.accounts if a.label == "faucet"), summary.validator_address),
        }
        status = "ok" if summary.result.status == "ok" else "warn"
        return status, f"method={summary.result.method} validator={summary.validator_address}"

    def stage_node_config(self) -> StageOutcome:
        info = parse_env_file(self.paths.account_info)
        accounts = parse_env_file(self.paths.accounts_env)
        # dry runs keep their placeholder addresses in memory only
        validator = (info.get("VALIDATOR_ADDRESS") or info.get("GENESIS_ACCOUNT_ADDRESS")
                     or self.addresses.get("validator"))
        funding = (accounts.get("FAUCET_ADDRESS") or info.get("GENESIS_ACCOUNT_ADDRESS")
                   or self.addresses.get("funding"))
        if not validator or not funding:
            raise DeployError("no account addresses recorded, run the genesis stage first")
        written = write_node_configs(self.paths, self.runner, validator, funding, variant=self.options.variant)
        return "ok", f"{len(written)} config files ({self.options.variant})"

    def stage_validator_keys(self) -> StageOutcome:
        if self.runner.dry_run:
            return "skipped", "dry-run"
        self.paths.ensure()
        keys = generate_validator_keys(self.paths)
        return "ok", ", ".join(sorted(keys))

    def stage_explorer(self) -> StageOutcome:
        port = choose_explorer_port(runner=self.runner, free_conflicts=self.options.fix_ports)
        self.explorer = install_explorer(self.runner, self.paths, port=port, prefer=self.options.explorer)
        if not self.runner.dry_run:
            self.paths.explorer_dir.mkdir(parents=True, exist_ok=True)
            self._explorer_state_path().write_text(json.dumps(asdict(self.explorer), indent=2), encoding="utf-8")
        status = "ok" if self.explorer.kind == "official" or self.options.explorer == "standalone" else "warn"
        return status, f"{self.explorer.kind} on port {port}"

    def _explorer_state_path(self):
        return self.paths.explorer_dir / "install.json"

    def _explorer_unit(self) -> Optional[systemd.ExplorerUnitInfo]:
        install = self.explorer
        if install is None and self._explorer_state_path().exists():
            install = ExplorerInstall(**json.loads(self._explorer_state_path().read_text(encoding="utf-8")))
        if install is None:
            return None
        return systemd.ExplorerUnitInfo(app_dir=install.app_dir, port=install.port,
                                        package_manager=install.package_manager,
                                        start_script=install.start_script)

    def _service_names(self) -> List[str]:
        if self.options.mode == "explorer":
            return ["sui-explorer"]
        names = list(systemd.SERVICE_ORDER)
        if self._explorer_unit() is None:
            names.remove("sui-explorer")
        return names

    def stage_systemd(self) -> StageOutcome:
        user = self.options.user or getpass.getuser()
        units = systemd.build_units(self.paths, user=user, explorer=self._explorer_unit())
        wanted = set(self._service_names())
        units = [u for name, u in units.items() if name in wanted]
        if not units:
            raise DeployError("no systemd units to install (explorer stage has not run)")
        systemd.install_units(self.runner, units)
        systemd.enable_services(self.runner, [u.name for u in units])
        return "ok", ", ".join(u.name for u in units)

    def stage_firewall(self) -> StageOutcome:
        backend = firewall.open_ports(self.runner)
        if backend is None:
            return "skipped", "no ufw or firewalld"
        return "ok", backend

    def stage_start(self) -> StageOutcome:
        started = systemd.start_services(self.runner, self._service_names())
        return "ok", " -> ".join(started)

    def _explorer_port(self) -> int:
        unit = self._explorer_unit()
        return unit.port if unit else CFG.PORT_EXPLORER

    def stage_nginx(self) -> StageOutcome:
        if self.runner.which("nginx") is None and not self.runner.dry_run:
            return "skipped", "nginx not installed"
        nginx.remove_default_site(self.runner)
        nginx.install_site(self.runner, self.options.domain, self._explorer_port())
        return "ok", f"{self.options.domain} -> {self._explorer_port()}"

    def stage_tls(self) -> StageOutcome:
        if not self.options.tls:
            return "skipped", "not requested"
        res = tls.setup_tls(self.runner, self.options.domain, self.options.email, self._explorer_port())
        return res.status, f"{res.method} {res.reason or ''}".strip()

    def stage_helper_scripts(self) -> StageOutcome:
        written = write_helper_scripts(self.paths, self.runner)
        return "ok", f"{len(written)} scripts in {self.paths.home}"

    def stage_verify(self) -> StageOutcome:
        if self.runner.dry_run:
            return "skipped", "dry-run"
        report = verify.verify_deployment(self.paths, self.runner, self.rpc, explorer_port=self._explorer_port())
        out = verify.write_health_report(report, self.options.report_dir or self.paths.logs_dir)
        if report.status == "failed":
            raise DeployError(f"verification failed, see {out}")
        return report.status, str(out)
