# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

from .shell import Runner
from ..utils import config as CFG
from ..utils.errors import RequirementError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.packages", stage="dependencies")

MANAGERS: Tuple[str, ...] = ("apt-get", "dnf", "yum", "pacman", "brew")

PACKAGE_SETS: Dict[str, List[str]] = {
    "apt-get": ["curl", "wget", "git", "build-essential", "pkg-config", "libssl-dev", "cmake",
                "clang", "libclang-dev", "protobuf-compiler", "jq", "lsof", "psmisc",
                "nginx", "certbot", "python3-certbot-nginx"],
    "dnf":     ["curl", "wget", "git", "openssl-devel", "cmake", "clang", "protobuf-compiler",
                "jq", "lsof", "psmisc", "nginx", "certbot", "python3-certbot-nginx"],
    "yum":     ["curl", "wget", "git", "openssl-devel", "cmake", "clang", "protobuf-compiler",
                "jq", "lsof", "psmisc", "nginx", "certbot", "python3-certbot-nginx"],
    "pacman":  ["curl", "wget", "git", "base-devel", "openssl", "cmake", "clang", "protobuf",
                "jq", "lsof", "psmisc", "nginx", "certbot", "certbot-nginx"],
    "brew":    ["curl", "wget", "git", "cmake", "protobuf", "jq", "nginx", "certbot"],
}

RUSTUP_SCRIPT = "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y"
NODE_PACKAGES: Dict[str, List[str]] = {
    "dnf": ["nodejs", "npm"],
    "yum": ["nodejs", "npm"],
    "pacman": ["nodejs", "npm"],
    "brew": ["node"],
}

# binaries that stand for the base package set and for the npm globals
BASE_TOOLS: Tuple[str, ...] = ("git", "curl", "cmake", "clang", "protoc", "jq", "lsof", "nginx", "certbot")
NPM_TOOL_BINARIES: Dict[str, str] = {"typescript": "tsc"}


def detect_package_manager(runner: Runner) -> Optional[str]:
    for name in MANAGERS:
        if runner.which(name):
            return name
    return None


def install_system_packages(runner: Runner, manager: Optional[str] = None) -> str:
    manager = manager or detect_package_manager(runner)
    missing = [t for t in BASE_TOOLS if not runner.which(t)]
    if not missing:
        log.info("[deps] Base toolchain already on PATH, skipping system packages")
        return manager or "present"
    if manager is None:
        raise RequirementError("no supported package manager found (apt-get, dnf, yum, pacman, brew)")

    pkgs = PACKAGE_SETS[manager]
    log.info("[deps] Installing %d system packages via %s", len(pkgs), manager)
    if manager == "apt-get":
        runner.run(["apt-get", "update"], privileged=True)
        runner.run(["apt-get", "install", "-y", *pkgs], privileged=True, env={"DEBIAN_FRONTEND": "noninteractive"})
    elif manager in ("dnf", "yum"):
        runner.run([manager, "groupinstall", "-y", "Development Tools"], privileged=True)
        runner.run([manager, "install", "-y", *pkgs], privileged=True)
    elif manager == "pacman":
        runner.run(["pacman", "-Sy", "--noconfirm", "--needed", *pkgs], privileged=True)
    else:
        runner.run(["brew", "install", *pkgs])
    return manager


def cargo_env() -> Dict[str, str]:
    cargo_bin = os.path.join(os.path.expanduser("~"), ".cargo", "bin")
    return {"PATH": cargo_bin + os.pathsep + os.environ.get("PATH", "")}


def install_rust(runner: Runner) -> None:
    env = cargo_env()
    if runner.which("cargo") or os.path.exists(os.path.join(env["PATH"].split(os.pathsep)[0], "cargo")):
        log.info("[deps] Rust already installed")
    else:
        log.info("[deps] Installing Rust toolchain via rustup")
        runner.shell(RUSTUP_SCRIPT)
    runner.run(["rustup", "default", "stable"], env=env)
    runner.run(["rustup", "target", "add", "wasm32-unknown-unknown"], env=env)
    runner.run(["rustup", "component", "add", "rustfmt", "clippy"], env=env)


def install_node(runner: Runner, manager: Optional[str] = None) -> None:
    if runner.which("node") and runner.which("npm"):
        log.info("[deps] Node.js already installed")
    elif (manager or detect_package_manager(runner)) == "apt-get":
        log.info("[deps] Installing Node.js %s from NodeSource", CFG.NODE_MAJOR)
        runner.shell(f"curl -fsSL https://deb.nodesource.com/setup_{CFG.NODE_MAJOR}.x | bash -", privileged=True)
        runner.run(["apt-get", "install", "-y", "nodejs"], privileged=True)
    else:
        manager = manager or detect_package_manager(runner)
        if manager not in NODE_PACKAGES:
            raise RequirementError("cannot install Node.js: no supported package manager")
        log.info("[deps] Installing Node.js from the %s repositories", manager)
        if manager == "brew":
            runner.run(["brew", "install", *NODE_PACKAGES[manager]])
        elif manager == "pacman":
            runner.run(["pacman", "-Sy", "--noconfirm", "--needed", *NODE_PACKAGES[manager]], privileged=True)
        else:
            runner.run([manager, "install", "-y", *NODE_PACKAGES[manager]], privileged=True)

    missing = [t for t in CFG.NODE_GLOBAL_TOOLS if not runner.which(NPM_TOOL_BINARIES.get(t, t))]
    if not missing:
        log.info("[deps] npm global tools already installed")
        return
    runner.run(["npm", "install", "-g", *missing], retry_with_sudo=True)


def install_dependencies(runner: Runner) -> str:
    manager = install_system_packages(runner)
    install_rust(runner)
    install_node(runner, manager)
    log.info("[deps] System dependencies installed")
    return manager
