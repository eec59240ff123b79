# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
SuiDeploy - interactive launcher

Role
- Menu front end over the `suideploy` subcommands for operators who
  prefer not to remember flags.

Intended environment
- A fresh VPS over SSH, run as a sudo-capable user.

Notes
- Every choice maps to one `suideploy` invocation; see `suideploy --help`
  for the non-interactive equivalents.
"""

import sys
from typing import List, Optional

# ---------------- Local Project ----------------
from suideploy.cli import CYAN, RED, YELLOW, clog, main as cli_main
from suideploy.utils import config as CFG
from suideploy.utils.helpers import print_banner
from suideploy.utils.sui_logging import setup_logging

MENU = (
    ("Full deploy (binaries, genesis, services, explorer, nginx)", ["deploy", "--mode", "full"]),
    ("Genesis only", ["genesis"]),
    ("Install only (dependencies and binaries)", ["install"]),
    ("Explorer only", ["explorer"]),
    ("Verify deployment", ["verify"]),
    ("Show status", ["status"]),
    ("Backup keys and configs", ["backup"]),
    ("Exit", None),
)


def choose_option() -> Optional[int]:
    """Returns the menu index (0-based), or None on EOF."""
    clog("Please choose an option:")
    for i, (label, _argv) in enumerate(MENU, start=1):
        clog(f"[{i}] {label}", color=CYAN)
    while True:
        try:
            sel = input(f"Select [1-{len(MENU)}]: ").strip()
        except EOFError:
            return None
        if sel.isdigit() and 1 <= int(sel) <= len(MENU):
            return int(sel) - 1
        clog(f"Invalid selection. Enter a number between 1 and {len(MENU)}.", color=YELLOW)


def _confirm(question: str) -> bool:
    try:
        return input(f"{question} [y/N]: ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


def build_argv(index: int) -> Optional[List[str]]:
    label, argv = MENU[index]
    if argv is None:
        return None
    argv = list(argv)
    if argv[0] == "deploy":
        domain = input(f"Domain for nginx [{CFG.DEFAULT_DOMAIN}]: ").strip() or CFG.DEFAULT_DOMAIN
        argv += ["--domain", domain]
        email = input("Email for Let's Encrypt (empty to skip TLS): ").strip()
        if email:
            argv += ["--email", email, "--tls"]
        if _confirm("Resume the previous run?"):
            argv.append("--resume")
    elif argv[0] == "backup" and _confirm("Encrypt the archive with a passphrase?"):
        argv.append("--encrypt")
    return ["--no-banner", *argv]


def main() -> int:
    print_banner()
    while True:
        choice = choose_option()
        if choice is None:
            return 0
        argv = build_argv(choice)
        if argv is None:
            clog("Bye.", color=YELLOW)
            return 0
        rc = cli_main(argv)
        if rc != 0:
            clog(f"suideploy exited with status {rc}", color=RED)


if __name__ == "__main__":
    setup_logging(force=True)
    sys.exit(main())
