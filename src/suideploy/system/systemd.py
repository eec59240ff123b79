# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import getpass, time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .shell import Runner
from ..node.paths import SuiPaths
from ..utils import config as CFG
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.systemd", stage="systemd")

SERVICE_ORDER: Tuple[str, ...] = ("sui-fullnode", "sui-validator", "sui-faucet", "sui-explorer")


@dataclass(frozen=True)
class UnitSpec:
    name: str
    description: str
    exec_start: str
    working_dir: str
    user: str
    requires: Tuple[str, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)
    service_extra: Dict[str, str] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return f"{self.name}.service"


@dataclass(frozen=True)
class ExplorerUnitInfo:
    app_dir: str
    port: int
    package_manager: str = "npm"
    start_script: str = "start"
    rpc_url: str = CFG.RPC_URL

    @property
    def exec_start(self) -> str:
        if self.start_script == "start":
            return f"/usr/bin/env {self.package_manager} start"
        return f"/usr/bin/env {self.package_manager} run {self.start_script}"


def render_unit(spec: UnitSpec) -> str:
    after = " ".join(["network.target", *(f"{r}.service" for r in spec.requires)])
    lines = [
        "[Unit]",
        f"Description={spec.description}",
        f"After={after}",
        "Wants=network.target",
    ]
    if spec.requires:
        lines.append("Requires=" + " ".join(f"{r}.service" for r in spec.requires))
    lines += [
        "",
        "[Service]",
        "Type=simple",
        f"User={spec.user}",
        f"Group={spec.user}",
        f"WorkingDirectory={spec.working_dir}",
        f"ExecStart={spec.exec_start}",
        "Restart=always",
        "RestartSec=10",
        "StandardOutput=journal",
        "StandardError=journal",
        f"SyslogIdentifier={spec.name}",
    ]
    lines += [f"Environment={k}={v}" for k, v in spec.environment.items()]
    lines += [f"{k}={v}" for k, v in spec.service_extra.items()]
    lines += ["", "[Install]", "WantedBy=multi-user.target", ""]
    return "\n".join(lines)


def build_units(paths: SuiPaths, user: Optional[str] = None,
                explorer: Optional[ExplorerUnitInfo] = None) -> Dict[str, UnitSpec]:
    user = user or getpass.getuser()
    home = str(paths.home)
    rust_env = {"RUST_LOG": "info", "RUST_BACKTRACE": "1"}
    units: Dict[str, UnitSpec] = {
        "sui-fullnode": UnitSpec(
            name="sui-fullnode", description="Sui Full Node", user=user, working_dir=home,
            exec_start=f"{CFG.SUI_NODE_BIN} --config-path {paths.fullnode_config}",
            environment=dict(rust_env),
        ),
        "sui-validator": UnitSpec(
            name="sui-validator", description="Sui Validator", user=user, working_dir=home,
            exec_start=f"{CFG.SUI_NODE_BIN} --config-path {paths.validator_config}",
            requires=("sui-fullnode",), environment=dict(rust_env),
        ),
        "sui-faucet": UnitSpec(
            name="sui-faucet", description="Sui Faucet", user=user, working_dir=home,
            exec_start=f"{CFG.SUI_FAUCET_BIN} --config-path {paths.faucet_config}",
            requires=("sui-fullnode",), environment={"RUST_LOG": "info"},
        ),
    }
    if explorer is not None:
        units["sui-explorer"] = UnitSpec(
            name="sui-explorer", description="Sui Block Explorer", user=user,
            working_dir=explorer.app_dir,
            exec_start=explorer.exec_start,
            requires=("sui-fullnode",),
            environment={
                "NODE_ENV": "production",
                "PORT": str(explorer.port),
                "NEXT_PUBLIC_RPC_URL": explorer.rpc_url,
            },
            service_extra={
                "LimitNOFILE": str(CFG.EXPLORER_NOFILE),
                "MemoryMax": CFG.EXPLORER_MEMORY_MAX,
            },
        )
    return units


def install_units(runner: Runner, units: Iterable[UnitSpec], unit_dir: str = CFG.SYSTEMD_UNIT_DIR) -> List[Path]:
    written = []
    for spec in units:
        target = Path(unit_dir) / spec.filename
        runner.write_file(target, render_unit(spec), mode=0o644, privileged=True)
        written.append(target)
        log.info("[systemd] Wrote %s", target)
    runner.run(["systemctl", "daemon-reload"], privileged=True)
    return written


def _ordered(names: Iterable[str]) -> List[str]:
    wanted = set(names)
    ordered = [n for n in SERVICE_ORDER if n in wanted]
    return ordered + sorted(wanted - set(ordered))


def enable_services(runner: Runner, names: Iterable[str] = SERVICE_ORDER) -> None:
    for name in _ordered(names):
        runner.run(["systemctl", "enable", name], privileged=True)


def start_services(runner: Runner, names: Iterable[str] = SERVICE_ORDER,
                   settle_s: float = CFG.SERVICE_SETTLE_S) -> List[str]:
    started = []
    ordered = _ordered(names)
    for i, name in enumerate(ordered):
        log.info("[systemd] Starting %s", name)
        runner.run(["systemctl", "start", name], privileged=True)
        started.append(name)
        if settle_s and i < len(ordered) - 1 and not runner.dry_run:
            time.sleep(settle_s)
    return started


def stop_services(runner: Runner, names: Iterable[str] = SERVICE_ORDER) -> List[str]:
    stopped = []
    for name in reversed(_ordered(names)):
        res = runner.try_run(["systemctl", "stop", name], privileged=True)
        if res.ok:
            stopped.append(name)
        else:
            log.warning("[systemd] Could not stop %s: %s", name, res.stderr.strip())
    return stopped


def restart_service(runner: Runner, name: str) -> None:
    runner.run(["systemctl", "restart", name], privileged=True)


def service_state(runner: Runner, name: str) -> str:
    res = runner.try_run(["systemctl", "is-active", name])
    if res.dry_run:
        return "unknown"
    return (res.stdout.strip() or "inactive").splitlines()[0]


def service_states(runner: Runner, names: Sequence[str] = SERVICE_ORDER) -> Dict[str, str]:
    return {name: service_state(runner, name) for name in names}
