# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os
import hashlib
import secrets
import tempfile
import time
from pathlib import Path
from typing import Dict, Mapping, Optional

from suideploy.utils import config as CFG


def print_banner():
    banner = r"""
   _____       _ _____             _
  / ____|     (_)  __ \           | |
 | (___  _   _ _| |  | | ___ _ __ | | ___  _   _
  \___ \| | | | | |  | |/ _ \ '_ \| |/ _ \| | | |
  ____) | |_| | | |__| |  __/ |_) | | (_) | |_| |
 |_____/ \__,_|_|_____/ \___| .__/|_|\___/ \__, |
                            | |             __/ |
                            |_|            |___/
                      Custom Sui Network Deployer
        1% daily delegator payout - 1.5% daily validator payout
    """
    print(banner)


# -----------------------------
# AMOUNTS
# -----------------------------

def format_sui(mist: int) -> str:
    whole, frac = divmod(int(mist), CFG.MIST_PER_SUI)
    if frac == 0:
        return f"{whole:,} SUI"
    return f"{whole:,}.{frac:09d}".rstrip("0") + " SUI"


def human_bytes(n: float) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    n = float(n)
    i = 0
    while n >= 1024.0 and i < len(units) - 1:
        n /= 1024.0
        i += 1
    return f"{n:.1f} {units[i]}"


# -----------------------------
# IDS & TIME
# -----------------------------

def random_hex(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def timestamp_slug(ts: Optional[float] = None) -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.localtime(ts if ts is not None else time.time()))


# -----------------------------
# FILES
# -----------------------------

def atomic_write_text(path: str | os.PathLike, content: str, mode: Optional[int] = None) -> Path:
    return atomic_write_bytes(path, content.encode("utf-8"), mode=mode)


def atomic_write_bytes(path: str | os.PathLike, data: bytes, mode: Optional[int] = None) -> Path:
    """Temp file in the target directory, then ``os.replace``. The temp file starts 0600."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    return target


def sha256_file(path: str | os.PathLike) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(4 * 1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_env_file(path: str | os.PathLike) -> Dict[str, str]:
    """Read KEY=VALUE lines; later assignments win, comments and blanks are skipped."""
    out: Dict[str, str] = {}
    p = Path(path)
    if not p.exists():
        return out
    for raw in p.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        out[key.strip()] = value.strip().strip('"').strip("'")
    return out


def upsert_env_file(path: str | os.PathLike, values: Mapping[str, str]) -> Path:
    merged = parse_env_file(path)
    merged.update({k: str(v) for k, v in values.items()})
    body = "".join(f"{k}={v}\n" for k, v in merged.items())
    return atomic_write_text(path, body)
