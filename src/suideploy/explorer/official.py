# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import json, os, shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import ExplorerError
from ..utils.helpers import atomic_write_text
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.explorer.official", stage="explorer")

NEXT_SCRIPTS = {
    "dev": "next dev",
    "build": "next build",
    "start": "next start",
    "lint": "next lint",
    "export": "next export",
}
OVERRIDE_FILES = ("next.config.custom.js", "next.config.override.js")


@dataclass(frozen=True)
class PackageInfo:
    name: str
    is_next: bool
    has_start: bool
    has_dev: bool
    has_build: bool


def _read_package(app_dir: Path) -> Dict[str, Any]:
    pkg = app_dir / "package.json"
    try:
        return json.loads(pkg.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ExplorerError(f"no package.json in {app_dir}") from exc
    except ValueError as exc:
        raise ExplorerError(f"package.json in {app_dir} is not valid JSON") from exc


def _backup(path: Path) -> Optional[Path]:
    if not path.exists():
        return None
    backup = path.with_name(path.name + ".backup")
    if not backup.exists():
        shutil.copy2(path, backup)
    return backup


def clone_explorer(runner: Runner, base_dir: str | os.PathLike, url: str = CFG.EXPLORER_REPO_URL) -> Path:
    repo = Path(base_dir) / CFG.EXPLORER_REPO_DIR
    if (repo / ".git").exists():
        log.info("[explorer] Updating %s", repo)
        runner.run(["git", "pull", "--ff-only"], cwd=repo)
    else:
        if not runner.dry_run:
            Path(base_dir).mkdir(parents=True, exist_ok=True)
        log.info("[explorer] Cloning %s", url)
        runner.run(["git", "clone", "--depth", "1", url, str(repo)])
    return repo


def find_app_dir(repo_dir: str | os.PathLike) -> Path:
    repo = Path(repo_dir)
    for rel in CFG.EXPLORER_APP_CANDIDATES:
        candidate = repo / rel
        if (candidate / "package.json").is_file():
            log.info("[explorer] Found explorer app at %s", candidate)
            return candidate
    raise ExplorerError(f"no explorer app found under {repo} (tried {', '.join(CFG.EXPLORER_APP_CANDIDATES)})")


def inspect_package(app_dir: str | os.PathLike) -> PackageInfo:
    pkg = _read_package(Path(app_dir))
    scripts = pkg.get("scripts") or {}
    deps = dict(pkg.get("dependencies") or {})
    deps.update(pkg.get("devDependencies") or {})
    return PackageInfo(
        name=str(pkg.get("name", "")),
        is_next="next" in deps,
        has_start="start" in scripts,
        has_dev="dev" in scripts,
        has_build="build" in scripts,
    )


def choose_start_script(info: PackageInfo) -> Optional[str]:
    """Script the app ships for serving: ``start``, else ``dev``, else ``None``."""
    if info.has_start:
        return "start"
    if info.has_dev:
        return "dev"
    return None


def patch_package_json(app_dir: str | os.PathLike) -> List[str]:
    """Add missing Next.js scripts and deps. Returns what was changed."""
    app = Path(app_dir)
    pkg = _read_package(app)
    changes: List[str] = []

    scripts = pkg.setdefault("scripts", {})
    for name, cmd in NEXT_SCRIPTS.items():
        if name not in scripts:
            scripts[name] = cmd
            changes.append(f"script:{name}")

    deps = pkg.setdefault("dependencies", {})
    dev_deps = pkg.get("devDependencies") or {}
    wanted = {"next": CFG.EXPLORER_NEXT_VERSION, "react": CFG.EXPLORER_REACT_VERSION,
              "react-dom": CFG.EXPLORER_REACT_VERSION}
    for name, version in wanted.items():
        if name not in deps and name not in dev_deps:
            deps[name] = version
            changes.append(f"dep:{name}")

    if changes:
        _backup(app / "package.json")
        atomic_write_text(app / "package.json", json.dumps(pkg, indent=2) + "\n")
        log.info("[explorer] Patched package.json: %s", ", ".join(changes))
    return changes


def fix_tsconfig_paths(app_dir: str | os.PathLike) -> bool:
    ts = Path(app_dir) / "tsconfig.json"
    if not ts.exists():
        return False
    try:
        doc = json.loads(ts.read_text(encoding="utf-8"))
    except ValueError:
        # tsconfig often carries comments; leave it alone
        log.warning("[explorer] tsconfig.json is not strict JSON, skipping path fix")
        return False
    opts = doc.setdefault("compilerOptions", {})
    changed = False
    if opts.get("baseUrl") != ".":
        opts["baseUrl"] = "."
        changed = True
    paths = opts.setdefault("paths", {})
    if "@/*" not in paths:
        paths["@/*"] = ["./src/*"]
        changed = True
    if changed:
        _backup(ts)
        atomic_write_text(ts, json.dumps(doc, indent=2) + "\n")
        log.info("[explorer] Fixed tsconfig path aliases in %s", ts)
    return changed


def write_env_local(app_dir: str | os.PathLike, rpc_url: str = CFG.RPC_URL, ws_url: str = CFG.WS_URL,
                    port: int = CFG.PORT_EXPLORER, network_name: str = CFG.NETWORK_LABEL,
                    faucet_url: str = CFG.FAUCET_URL) -> Path:
    body = "\n".join([
        "# Sui Explorer Configuration for Custom Network",
        f"NEXT_PUBLIC_RPC_URL={rpc_url}",
        f"NEXT_PUBLIC_WS_URL={ws_url}",
        "NEXT_PUBLIC_NETWORK=custom",
        f"NEXT_PUBLIC_NETWORK_NAME={network_name}",
        f"NEXT_PUBLIC_FAUCET_URL={faucet_url.rstrip('/')}/gas",
        "NEXT_PUBLIC_ENABLE_DEV_TOOLS=true",
        f"PORT={port}",
        "NODE_ENV=production",
        "",
    ])
    return atomic_write_text(Path(app_dir) / ".env.local", body)


def cleanup_custom_overrides(app_dir: str | os.PathLike) -> List[str]:
    removed = []
    for name in OVERRIDE_FILES:
        p = Path(app_dir) / name
        if p.exists():
            p.unlink()
            removed.append(name)
    if removed:
        log.info("[explorer] Removed conflicting overrides: %s", ", ".join(removed))
    return removed


def package_manager(runner: Runner) -> str:
    return "pnpm" if runner.which("pnpm") else "npm"


def install_and_build(runner: Runner, app_dir: str | os.PathLike) -> str:
    pm = package_manager(runner)
    log.info("[explorer] Installing explorer dependencies with %s", pm)
    runner.run([pm, "install"], cwd=app_dir)
    log.info("[explorer] Building block explorer (this may take 10-15 minutes)")
    runner.run([pm, "run", "build"], cwd=app_dir)
    return pm
