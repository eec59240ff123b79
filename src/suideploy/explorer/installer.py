# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from . import official, standalone
from ..node.paths import SuiPaths
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import CommandError, ExplorerError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.explorer.installer", stage="explorer")


@dataclass(frozen=True)
class ExplorerInstall:
    kind: str
    app_dir: str
    package_manager: str
    port: int
    start_script: str = "start"
    reason: str | None = None


def _install_official(runner: Runner, paths: SuiPaths, port: int, rpc_url: str) -> ExplorerInstall:
    repo = official.clone_explorer(runner, paths.explorer_dir)
    if runner.dry_run:
        app = repo / CFG.EXPLORER_APP_CANDIDATES[0]
        return ExplorerInstall(kind="official", app_dir=str(app), package_manager=official.package_manager(runner), port=port)

    app = official.find_app_dir(repo)
    info = official.inspect_package(app)
    if not info.is_next:
        raise ExplorerError(f"{app} is not a Next.js application")
    start_script = official.choose_start_script(info)
    if start_script is None:
        raise ExplorerError(f"{app} has no start or dev script")
    official.cleanup_custom_overrides(app)
    changes = official.patch_package_json(app)
    if changes:
        log.warning("[explorer] Official explorer was missing %s", ", ".join(changes))
    official.fix_tsconfig_paths(app)
    official.write_env_local(app, rpc_url=rpc_url, port=port)
    pm = official.install_and_build(runner, app)
    return ExplorerInstall(kind="official", app_dir=str(app), package_manager=pm, port=port,
                           start_script=start_script)


def _install_standalone(runner: Runner, paths: SuiPaths, port: int, rpc_url: str,
                        reason: str | None = None) -> ExplorerInstall:
    target = Path(paths.explorer_dir) / CFG.EXPLORER_STANDALONE_DIR
    if not runner.dry_run:
        standalone.scaffold_standalone(target, rpc_url=rpc_url, port=port)
    log.info("[explorer] Installing standalone explorer dependencies")
    runner.run(["npm", "install"], cwd=target)
    return ExplorerInstall(kind="standalone", app_dir=str(target), package_manager="npm", port=port, reason=reason)


def install_explorer(runner: Runner, paths: SuiPaths, port: int = CFG.PORT_EXPLORER,
                     rpc_url: str = CFG.RPC_URL, prefer: str = "official") -> ExplorerInstall:
    """Official explorer first; any failure in that chain falls back to the standalone app."""
    if prefer == "standalone":
        return _install_standalone(runner, paths, port, rpc_url, reason="requested")
    try:
        result = _install_official(runner, paths, port, rpc_url)
        log.info("[explorer] Official explorer ready at %s", result.app_dir)
        return result
    except (ExplorerError, CommandError) as exc:
        log.warning("[explorer] Official explorer failed (%s), falling back to standalone explorer", exc)
        return _install_standalone(runner, paths, port, rpc_url, reason=type(exc).__name__)
