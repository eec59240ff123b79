# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import re
from typing import Optional

from ..system.shell import CommandResult, Runner
from ..utils import config as CFG
from ..utils.errors import GenesisError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.sui_cli")

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{64}")
_LEGACY_RE = re.compile(r"Created new keypair.*?(0x[0-9a-fA-F]{64})")
_VERSION_RE = re.compile(r"sui\s+(\S+)")

# stands in for addresses while nothing is executed; never persisted
DRY_RUN_ADDRESS = "0x" + "0" * 64


def parse_new_address(output: str) -> str:
    """Address from `sui client new-address` output (legacy line or table form)."""
    m = _LEGACY_RE.search(output)
    if m:
        return m.group(1).lower()
    for line in output.splitlines():
        if "address" in line.lower():
            m = _ADDRESS_RE.search(line)
            if m:
                return m.group(0).lower()
    m = _ADDRESS_RE.search(output)
    if m:
        return m.group(0).lower()
    raise GenesisError("could not parse an address from `sui client new-address` output")


class SuiCli:
    def __init__(self, runner: Runner, binary: Optional[str] = None):
        self.runner = runner
        self.binary = binary or runner.which("sui") or CFG.SUI_BIN

    def _run(self, *args: str, check: bool = True, cwd=None) -> CommandResult:
        return self.runner.run([self.binary, *args], check=check, cwd=cwd)

    def version(self) -> Optional[str]:
        res = self._run("--version", check=False)
        if not res.ok:
            return None
        m = _VERSION_RE.search(res.stdout)
        return m.group(1) if m else (res.stdout.strip() or None)

    def ensure_client_config(self, config_dir) -> bool:
        """Answer the first-run prompts of `sui client` (connect: yes, default URL, ed25519)."""
        if (config_dir / "client.yaml").exists():
            return False
        res = self.runner.run([self.binary, "client", "envs"], check=False, input_text="y\n\n0\n")
        if not res.ok:
            log.warning("[sui] client config initialisation returned %s", res.returncode)
        return res.ok

    def new_address(self, scheme: str) -> str:
        res = self._run("client", "new-address", scheme)
        if res.dry_run:
            return DRY_RUN_ADDRESS
        return parse_new_address(res.stdout + "\n" + res.stderr)

    def active_address(self) -> Optional[str]:
        res = self._run("client", "active-address", check=False)
        m = _ADDRESS_RE.search(res.stdout)
        return m.group(0).lower() if m else None

    def export_key(self, address: str) -> str:
        res = self._run("keytool", "export", "--key-identity", address)
        return res.stdout.strip()

    def genesis(self, working_dir: str, with_faucet: bool = True, force: bool = True) -> CommandResult:
        args = ["genesis"]
        if force:
            args.append("-f")
        if with_faucet:
            args.append("--with-faucet")
        args += ["--working-dir", str(working_dir)]
        log.info("[sui] %s", " ".join(args))
        return self._run(*args)

    def available(self) -> bool:
        return self.version() is not None
