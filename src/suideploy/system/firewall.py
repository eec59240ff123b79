# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

from typing import Iterable, Optional

from .shell import Runner
from ..utils import config as CFG
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.firewall", stage="firewall")


def detect_backend(runner: Runner) -> Optional[str]:
    if runner.which("ufw"):
        return "ufw"
    if runner.which("firewall-cmd"):
        return "firewalld"
    return None


def open_ports(runner: Runner, ports: Iterable[int] = CFG.FIREWALL_PORTS) -> Optional[str]:
    ports = [int(p) for p in ports]
    backend = detect_backend(runner)
    if backend == "ufw":
        for port in ports:
            runner.run(["ufw", "allow", f"{port}/tcp"], privileged=True)
        runner.run(["ufw", "--force", "enable"], privileged=True)
    elif backend == "firewalld":
        for port in ports:
            runner.run(["firewall-cmd", "--permanent", f"--add-port={port}/tcp"], privileged=True)
        runner.run(["firewall-cmd", "--reload"], privileged=True)
    else:
        log.warning("[firewall] No supported firewall found. Please manually open ports: %s",
                    ", ".join(str(p) for p in ports))
        return None
    log.info("[firewall] %s configured for %d ports", backend, len(ports))
    return backend
