# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
SuiDeploy - command line front end

Role
- Deploys and operates a single-host custom Sui network: binaries, genesis,
  validator/fullnode/faucet services, explorer, nginx and TLS.

Key flags
--home      : SUI_HOME to work in (default ~/.sui).
--dry-run   : Record every command and file write without touching the host.
--no-sudo   : Never prefix privileged commands with sudo.

Notes
- Every deploy run is recorded in the local ledger; `deploy --resume`
  skips stages the previous run of the same mode already finished.
"""

from __future__ import annotations

import argparse, getpass, sys
from datetime import datetime
from typing import List, Optional

import colorama

# ---------------- Local Project ----------------
from .node.paths import SuiPaths
from .node.rpc_client import SuiRpcClient
from .ops import backup as backup_ops
from .ops import verify as verify_ops
from .ops.deploy import MODES, DeployOptions, Deployer
from .ops.status import collect_status, format_status
from .storage import kv, ledger
from .system import systemd
from .system.ports import SERVICE_PORTS, choose_explorer_port, fix_port_conflicts
from .system.shell import Runner
from .utils import config as CFG
from .utils.errors import DeployError
from .utils.helpers import print_banner
from .utils.sui_logging import export_log_bundle, get_ctx_logger, setup_logging
from .web import nginx, tls

log = get_ctx_logger("suideploy.cli")

# ---------- Simple color + timestamp utilities ----------

colorama.init()
RESET  = colorama.Style.RESET_ALL
BLUE   = colorama.Fore.BLUE
YELLOW = colorama.Fore.YELLOW
GREEN  = colorama.Fore.GREEN
RED    = colorama.Fore.RED
CYAN   = colorama.Fore.CYAN
DIM    = colorama.Style.DIM

_STATUS_COLORS = {"ok": GREEN, "resumed": CYAN, "skipped": DIM, "warn": YELLOW, "failed": RED}


def _stamp() -> str:
    now = datetime.now()
    d = f"{now.year:04d}.{now.month:02d}.{now.day:02d}"
    t = f"{now.hour:02d}.{now.minute:02d}.{now.second:02d}"
    return f"[{BLUE}{d}{RESET}] - [{YELLOW}{t}{RESET}]"


def clog(message: str, color: str = GREEN):
    print(f"{_stamp()} : {color}{message}{RESET}")


def _status_line(label: str, status: str, detail: str = "") -> str:
    color = _STATUS_COLORS.get(status, RESET)
    return f"  {label:<16} {color}{status.upper():<8}{RESET} {detail}"


def _ask_passphrase(confirm: bool) -> str:
    first = getpass.getpass("Backup passphrase: ")
    if not first:
        raise DeployError("empty passphrase")
    if confirm and getpass.getpass("Repeat passphrase: ") != first:
        raise DeployError("passphrases do not match")
    return first


# ---------- commands ----------

def _run_deploy(args, paths: SuiPaths, runner: Runner, mode: str) -> int:
    opts = DeployOptions(
        mode=mode,
        resume=getattr(args, "resume", False),
        host=getattr(args, "host", "127.0.0.1"),
        domain=getattr(args, "domain", None) or CFG.DEFAULT_DOMAIN,
        email=getattr(args, "email", None),
        tls=getattr(args, "tls", False),
        explorer="standalone" if getattr(args, "standalone", False) else "official",
        fix_ports=getattr(args, "fix_ports", False),
        prefer_release=not getattr(args, "no_release", False),
        require_payout_patch=getattr(args, "require_payout_patch", None),
        variant=getattr(args, "variant", "standard"),
    )
    clog(f"Deploying ({mode}) into {paths.home}" + (" [dry-run]" if runner.dry_run else ""), color=CYAN)
    result = Deployer(paths, runner, opts).run()
    for rec in result.stages:
        print(_status_line(rec.stage, rec.status, rec.detail))
    color = GREEN if result.status == "ok" else YELLOW
    clog(f"Run {result.run_id} finished: {result.status.upper()}", color=color)
    if runner.dry_run:
        clog(f"{len(runner.history)} commands/writes recorded", color=DIM)
    return 0


def cmd_deploy(args, paths, runner) -> int:
    return _run_deploy(args, paths, runner, args.mode)


def cmd_genesis(args, paths, runner) -> int:
    return _run_deploy(args, paths, runner, "genesis")


def cmd_install(args, paths, runner) -> int:
    return _run_deploy(args, paths, runner, "install")


def cmd_explorer(args, paths, runner) -> int:
    return _run_deploy(args, paths, runner, "explorer")


def cmd_nginx(args, paths, runner) -> int:
    nginx.remove_default_site(runner)
    nginx.install_site(runner, args.domain, args.port)
    clog(f"nginx: {args.domain} -> 127.0.0.1:{args.port}")
    if args.tls:
        res = tls.setup_tls(runner, args.domain, args.email, args.port)
        color = GREEN if res.status == "ok" else YELLOW
        clog(f"TLS: {res.method} ({res.status}{', ' + res.reason if res.reason else ''})", color=color)
    return 0


def cmd_status(args, paths, runner) -> int:
    for line in format_status(collect_status(paths, runner, SuiRpcClient(args.rpc_url))):
        print(line)
    return 0


def cmd_verify(args, paths, runner) -> int:
    report = verify_ops.verify_deployment(paths, runner, SuiRpcClient(args.rpc_url),
                                          explorer_port=args.explorer_port,
                                          request_gas=not args.no_faucet)
    for c in report.checks:
        print(_status_line(c.name[:16], c.status, c.detail))
    out = verify_ops.write_health_report(report, args.report_dir or paths.logs_dir)
    color = {"ok": GREEN, "warn": YELLOW}.get(report.status, RED)
    clog(f"Verification {report.status.upper()} - report: {out}", color=color)
    return 1 if report.status == "failed" else 0


def cmd_backup(args, paths, runner) -> int:
    passphrase = _ask_passphrase(confirm=True) if args.encrypt else None
    res = backup_ops.create_backup(paths, args.dest, passphrase)
    clog(f"Backup written: {res.path} ({', '.join(res.members)})")
    return 0


def cmd_restore(args, paths, runner) -> int:
    passphrase = None
    if args.archive.endswith(backup_ops.ENC_SUFFIX):
        passphrase = _ask_passphrase(confirm=False)
    target = args.target or str(paths.home)
    restored = backup_ops.restore_backup(args.archive, target, passphrase)
    clog(f"Restored {', '.join(restored)} into {target}")
    return 0


def cmd_fix_ports(args, paths, runner) -> int:
    ports = dict(SERVICE_PORTS)
    if args.explorer_fallback:
        explorer = ports.pop("explorer")
        chosen = choose_explorer_port(preferred=explorer, runner=runner, free_conflicts=False)
        clog(f"Explorer port: {chosen}", color=CYAN)
    report = fix_port_conflicts(runner, ports.values())
    for port, pids in sorted(report.freed.items()):
        clog(f"Port {port}: stopped {', '.join(map(str, pids)) or 'nothing'}", color=YELLOW)
    if report.still_busy:
        clog(f"Still busy: {', '.join(map(str, report.still_busy))}", color=RED)
        return 1
    clog("All service ports are free")
    return 0


def cmd_start(args, paths, runner) -> int:
    started = systemd.start_services(runner, args.services or systemd.SERVICE_ORDER)
    clog("Started: " + " -> ".join(started))
    return 0


def cmd_stop(args, paths, runner) -> int:
    stopped = systemd.stop_services(runner, args.services or systemd.SERVICE_ORDER)
    clog("Stopped: " + ", ".join(stopped) if stopped else "Nothing stopped", color=YELLOW)
    return 0


def cmd_restart(args, paths, runner) -> int:
    for name in args.services or systemd.SERVICE_ORDER:
        systemd.restart_service(runner, name)
        clog(f"Restarted {name}")
    return 0


def cmd_logs(args, paths, runner) -> int:
    out = export_log_bundle(args.bundle)
    clog(f"Log bundle written to {out}")
    return 0


def cmd_ledger(args, paths, runner) -> int:
    if args.run:
        run = ledger.get_run(args.run)
        if run is None:
            raise DeployError(f"unknown run {args.run}")
        print(f"run {run['id']} mode={run['mode']} status={run['status']}")
        for rec in ledger.stage_records(run["id"]):
            print(_status_line(rec["stage"], rec["status"], rec.get("detail", "")))
        return 0
    runs = ledger.list_runs(mode=args.mode, limit=args.limit)
    if not runs:
        clog("No deployment runs recorded", color=YELLOW)
    for run in runs:
        started = datetime.fromtimestamp(run["started"]).strftime("%Y-%m-%d %H:%M:%S")
        flag = " (dry-run)" if run.get("dry_run") else ""
        print(_status_line(run["id"], run["status"], f"{run['mode']} {started}{flag}"))
    return 0


# ---------- parser ----------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="suideploy", description=f"{CFG.NETWORK_LABEL} deployer")
    parser.add_argument("--home", help="SUI_HOME to deploy into (default: %(default)s)", default=CFG.SUI_HOME)
    parser.add_argument("--dry-run", action="store_true", help="Record commands without running them")
    parser.add_argument("--no-sudo", action="store_true", help="Never elevate privileged commands")
    parser.add_argument("--log-level", default=None, help="TRACE, DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Write JSON lines to the log file")
    parser.add_argument("--no-banner", action="store_true", help=argparse.SUPPRESS)
    sub = parser.add_subparsers(dest="command", required=True)

    def _deploy_flags(p, with_tls: bool = True):
        p.add_argument("--resume", action="store_true", help="Skip stages finished by the previous run")
        p.add_argument("--host", default="127.0.0.1", help="Advertised validator host")
        p.add_argument("--variant", choices=("standard", "isolated"), default="standard")
        p.add_argument("--no-release", action="store_true", help="Always build from source")
        p.add_argument("--require-payout-patch", action="store_true", default=None,
                       help="Refuse to build when the validator payout patch is missing")
        p.add_argument("--fix-ports", action="store_true", help="Free port 3000 instead of using 3011")
        p.add_argument("--standalone", action="store_true", help="Use the standalone explorer")
        if with_tls:
            p.add_argument("--domain", default=CFG.DEFAULT_DOMAIN)
            p.add_argument("--email")
            p.add_argument("--tls", action="store_true", help="Obtain a certificate after nginx")

    p = sub.add_parser("deploy", help="Run a deployment")
    p.add_argument("--mode", choices=tuple(MODES), default="full")
    _deploy_flags(p)
    p.set_defaults(func=cmd_deploy)

    p = sub.add_parser("genesis", help="Accounts, genesis and node configs only")
    _deploy_flags(p, with_tls=False)
    p.set_defaults(func=cmd_genesis)

    p = sub.add_parser("install", help="Dependencies and sui binaries only")
    _deploy_flags(p, with_tls=False)
    p.set_defaults(func=cmd_install)

    p = sub.add_parser("explorer", help="Install and start the block explorer")
    _deploy_flags(p)
    p.set_defaults(func=cmd_explorer)

    p = sub.add_parser("nginx", help="Configure the nginx reverse proxy")
    p.add_argument("--domain", required=True)
    p.add_argument("--email")
    p.add_argument("--port", type=int, default=CFG.PORT_EXPLORER, help="Upstream explorer port")
    p.add_argument("--tls", action="store_true")
    p.set_defaults(func=cmd_nginx)

    p = sub.add_parser("status", help="Show services, ports and chain id")
    p.add_argument("--rpc-url", default=CFG.RPC_URL)
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("verify", help="Verify a running deployment")
    p.add_argument("--report-dir")
    p.add_argument("--rpc-url", default=CFG.RPC_URL)
    p.add_argument("--explorer-port", type=int, default=CFG.PORT_EXPLORER)
    p.add_argument("--no-faucet", action="store_true", help="Skip the faucet gas request")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("backup", help="Archive keys, genesis and configs")
    p.add_argument("--encrypt", action="store_true")
    p.add_argument("--dest", default=CFG.BACKUP_DIR)
    p.set_defaults(func=cmd_backup)

    p = sub.add_parser("restore", help="Restore a backup archive")
    p.add_argument("archive")
    p.add_argument("--target", help="Directory to restore into (default: --home)")
    p.set_defaults(func=cmd_restore)

    p = sub.add_parser("fix-ports", help="Stop processes holding service ports")
    p.add_argument("--explorer-fallback", action="store_true", help="Leave 3000 alone and use the fallback port")
    p.set_defaults(func=cmd_fix_ports)

    for name, func, text in (("start", cmd_start, "Start services in dependency order"),
                             ("stop", cmd_stop, "Stop services in reverse order"),
                             ("restart", cmd_restart, "Restart services")):
        p = sub.add_parser(name, help=text)
        p.add_argument("services", nargs="*")
        p.set_defaults(func=func)

    p = sub.add_parser("logs", help="Export a log bundle")
    p.add_argument("--bundle", required=True, metavar="PATH")
    p.set_defaults(func=cmd_logs)

    p = sub.add_parser("ledger", help="Show recorded deployment runs")
    p.add_argument("--mode", choices=tuple(MODES))
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--run", help="Show the stages of one run")
    p.set_defaults(func=cmd_ledger)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, as_json=True if args.json_logs else None, force=True)
    paths = SuiPaths.from_home(args.home)
    runner = Runner(dry_run=args.dry_run, sudo=False if args.no_sudo else None)

    if args.command in ("deploy", "genesis", "install", "explorer") and not args.no_banner:
        print_banner()
    try:
        return int(args.func(args, paths, runner) or 0)
    except KeyboardInterrupt:
        clog("Interrupted by user", color=YELLOW)
        return 130
    except DeployError as exc:
        log.error("[cli] %s failed: %s", args.command, exc)
        clog(f"Error: {exc}", color=RED)
        return 1
    finally:
        kv.close()


if __name__ == "__main__":
    sys.exit(main())
