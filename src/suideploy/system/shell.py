# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os, shlex, shutil, subprocess, time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

# ---------------- Local Project ----------------
from ..utils.errors import CommandError
from ..utils.helpers import atomic_write_text
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.shell")


@dataclass(frozen=True)
class CommandResult:
    argv: tuple
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return bool(geteuid and geteuid() == 0)


class Runner:
    """Runs external tools for every deployment stage.

    ``sudo=None`` elevates privileged commands only when the process is not
    root and a ``sudo`` binary exists. In dry-run mode nothing is executed;
    every command (and every file write) lands in ``history`` instead.
    """

    def __init__(self, dry_run: bool = False, sudo: Optional[bool] = None,
                 env: Optional[Mapping[str, str]] = None, timeout: Optional[float] = None):
        self.dry_run = bool(dry_run)
        if sudo is None:
            sudo = (not _is_root()) and shutil.which("sudo") is not None
        self.sudo = bool(sudo)
        self.env = dict(env or {})
        self.timeout = timeout
        self.history: List[tuple] = []

    # ---------- primitives ----------

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def _elevate(self, argv: Sequence[str]) -> List[str]:
        argv = [str(a) for a in argv]
        if self.sudo and argv[:1] != ["sudo"]:
            return ["sudo", "-E"] + argv
        return argv

    def _execute(self, argv: List[str], cwd: Optional[str], env: Dict[str, str],
                 input_text: Optional[str], timeout: Optional[float]) -> CommandResult:
        started = time.monotonic()
        proc = subprocess.run(
            argv, cwd=cwd, env=env, input=input_text, capture_output=True,
            text=True, timeout=timeout,
        )
        return CommandResult(
            argv=tuple(argv), returncode=proc.returncode, stdout=proc.stdout or "",
            stderr=proc.stderr or "", duration_s=time.monotonic() - started,
        )

    # ---------- public API ----------

    def run(self, argv: Sequence[str], check: bool = True, cwd: Optional[str | os.PathLike] = None,
            env: Optional[Mapping[str, str]] = None, privileged: bool = False,
            retry_with_sudo: bool = False, input_text: Optional[str] = None,
            timeout: Optional[float] = None) -> CommandResult:
        cmd = self._elevate(argv) if privileged else [str(a) for a in argv]
        cwd_s = str(cwd) if cwd is not None else None

        if self.dry_run:
            self.history.append(tuple(cmd))
            log.info("[shell] (dry-run) %s", shlex.join(cmd))
            return CommandResult(argv=tuple(cmd), returncode=0, dry_run=True)

        full_env = dict(os.environ)
        full_env.update(self.env)
        if env:
            full_env.update(env)

        log.trace("[shell] $ %s%s", shlex.join(cmd), f"  (cwd={cwd_s})" if cwd_s else "")
        self.history.append(tuple(cmd))
        try:
            result = self._execute(cmd, cwd_s, full_env, input_text, timeout or self.timeout)
        except FileNotFoundError:
            result = CommandResult(argv=tuple(cmd), returncode=127, stderr=f"{cmd[0]}: command not found")
        except subprocess.TimeoutExpired:
            result = CommandResult(argv=tuple(cmd), returncode=124, stderr="timed out")

        if not result.ok and retry_with_sudo and not privileged and self.sudo:
            log.warning("[shell] %s failed (%s), retrying with sudo", cmd[0], result.returncode)
            return self.run(argv, check=check, cwd=cwd, env=env, privileged=True,
                            input_text=input_text, timeout=timeout)

        if not result.ok:
            log.debug("[shell] exit=%s %s :: %s", result.returncode, shlex.join(cmd), result.stderr.strip()[-400:])
            if check:
                raise CommandError(cmd, result.returncode, result.stderr, result.stdout)
        return result

    def try_run(self, argv: Sequence[str], **kwargs) -> CommandResult:
        kwargs["check"] = False
        return self.run(argv, **kwargs)

    def shell(self, script: str, check: bool = True, privileged: bool = False, **kwargs) -> CommandResult:
        """Run a pipeline such as ``curl ... | sh`` through bash."""
        return self.run(["bash", "-c", script], check=check, privileged=privileged, **kwargs)

    def write_file(self, path: str | os.PathLike, content: str, mode: Optional[int] = None,
                   privileged: bool = False) -> Path:
        target = Path(path)
        if self.dry_run:
            self.history.append(("write", str(target)))
            log.info("[shell] (dry-run) write %s (%d bytes)", target, len(content))
            return target

        if not privileged:
            try:
                return atomic_write_text(target, content, mode=mode)
            except PermissionError:
                if not self.sudo:
                    raise
                log.warning("[shell] permission denied writing %s, retrying through sudo tee", target)

        self.run(["mkdir", "-p", str(target.parent)], privileged=True)
        # create with the final mode first so tee never leaves a wider window
        if mode is not None:
            self.run(["install", "-m", format(mode, "o"), "/dev/null", str(target)], privileged=True)
        self.run(["tee", str(target)], privileged=True, input_text=content)
        return target

    def symlink(self, src: str | os.PathLike, dst: str | os.PathLike, privileged: bool = False) -> bool:
        """Create ``dst -> src`` unless it already exists. Returns True when created."""
        dst_p = Path(dst)
        if dst_p.is_symlink() or dst_p.exists():
            return False
        if privileged:
            self.run(["ln", "-s", str(src), str(dst_p)], privileged=True)
            return True
        if self.dry_run:
            self.history.append(("symlink", str(src), str(dst_p)))
            return True
        dst_p.symlink_to(src)
        return True
