# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .release import maybe_install_release
from .rewards import check_payout_source, payout_source_path
from ..system.packages import cargo_env
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import CommandError, DeployError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.build", stage="binaries")


@dataclass(frozen=True)
class BinaryInstall:
    method: str
    binaries: tuple
    payout_status: Optional[str] = None


def sync_source(runner: Runner, repo_dir: str | os.PathLike, url: str = CFG.SUI_REPO_URL,
                branch: str = CFG.SUI_BRANCH) -> Path:
    repo = Path(repo_dir)
    if not (repo / ".git").exists():
        log.info("[build] Cloning %s (%s) into %s", url, branch, repo)
        runner.run(["git", "clone", "--branch", branch, url, str(repo)])
        return repo

    log.info("[build] Updating %s", repo)
    pulled = runner.try_run(["git", "pull", "--ff-only", "origin", branch], cwd=repo)
    if pulled.ok:
        return repo

    # local edits (the payout patch, usually) block the pull
    log.warning("[build] git pull failed, stashing local changes and retrying")
    stashed = runner.try_run(["git", "stash", "push", "--include-untracked", "-m", "suideploy-autostash"], cwd=repo)
    pulled = runner.try_run(["git", "pull", "--ff-only", "origin", branch], cwd=repo)
    if pulled.ok:
        if stashed.ok:
            popped = runner.try_run(["git", "stash", "pop"], cwd=repo)
            if not popped.ok:
                log.warning("[build] Stash did not re-apply cleanly, it is kept in `git stash list`")
        return repo

    log.warning("[build] Pull still failing, resetting %s to origin/%s", repo, branch)
    runner.run(["git", "fetch", "origin", branch], cwd=repo)
    runner.run(["git", "reset", "--hard", f"origin/{branch}"], cwd=repo)
    return repo


def build_binaries(runner: Runner, repo_dir: str | os.PathLike,
                   require_payout_patch: Optional[bool] = None) -> str:
    if require_payout_patch is None:
        require_payout_patch = CFG.REQUIRE_PAYOUT_PATCH
    check = check_payout_source(payout_source_path(repo_dir))
    if check.status == "failed" and require_payout_patch:
        raise DeployError(f"validator payout modifications not found ({check.reason})")
    if check.status != "ok":
        log.warning("[build] Payout patch check: %s (%s), building anyway", check.status, check.reason)

    args = ["cargo", "build", "--release"]
    for name in CFG.SUI_BINARIES:
        args += ["--bin", name]
    log.info("[build] Building Sui binaries (this may take 20-30 minutes)")
    runner.run(args, cwd=repo_dir, env=cargo_env())
    return check.status


def install_binaries(runner: Runner, repo_dir: str | os.PathLike, bin_dir: str = CFG.BIN_DIR) -> List[str]:
    release_dir = Path(repo_dir) / "target" / "release"
    installed = []
    for name in CFG.SUI_BINARIES:
        src = release_dir / name
        if not runner.dry_run and not src.exists():
            raise DeployError(f"build output missing: {src}")
        runner.run(["install", "-m", "755", str(src), os.path.join(bin_dir, name)], privileged=True)
        installed.append(os.path.join(bin_dir, name))
    log.info("[build] Installed %s", ", ".join(installed))
    return installed


def ensure_binaries(runner: Runner, work_dir: str | os.PathLike, prefer_release: bool = True,
                    require_payout_patch: Optional[bool] = None) -> BinaryInstall:
    if prefer_release:
        res = maybe_install_release(runner, context="deploy")
        if res.status == "installed" or res.reason == "already_current":
            return BinaryInstall(method="release", binaries=CFG.SUI_BINARIES)
        if res.status == "failed":
            log.warning("[build] Release bootstrap failed (%s), building from source", res.reason)

    repo = sync_source(runner, Path(work_dir) / CFG.SOURCE_DIR_NAME)
    try:
        status = build_binaries(runner, repo, require_payout_patch=require_payout_patch)
    except CommandError:
        log.error("[build] cargo build failed in %s", repo)
        raise
    install_binaries(runner, repo)
    return BinaryInstall(method="source", binaries=CFG.SUI_BINARIES, payout_status=status)
