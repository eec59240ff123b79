# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import io, json, os, tarfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..node.paths import SuiPaths
from ..utils import config as CFG
from ..utils.errors import BackupError
from ..utils.helpers import atomic_write_bytes, human_bytes, timestamp_slug
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.ops.backup", stage="backup")

ARCHIVE_PREFIX = "sui_backup_"
PLAIN_SUFFIX = ".tar.gz"
ENC_SUFFIX = ".tar.gz.enc"


@dataclass(frozen=True)
class BackupResult:
    path: str
    members: tuple
    size: int
    encrypted: bool


# ---------- envelope ----------

def _derive_key(password: str, salt: bytes, n: int = CFG.BACKUP_SCRYPT_N,
                r: int = CFG.BACKUP_SCRYPT_R, p: int = CFG.BACKUP_SCRYPT_P) -> bytes:
    return Scrypt(salt=salt, length=32, n=n, r=r, p=p).derive(password.encode("utf-8"))


def encrypt_blob(blob: bytes, password: str) -> Dict:
    salt = os.urandom(16)
    nonce = os.urandom(12)
    ct = AESGCM(_derive_key(password, salt)).encrypt(nonce, blob, None)
    return {
        "alg": "AESGCM",
        "nonce": nonce.hex(),
        "ct": ct.hex(),
        "kdf": "scrypt",
        "salt": salt.hex(),
        "n": CFG.BACKUP_SCRYPT_N,
        "r": CFG.BACKUP_SCRYPT_R,
        "p": CFG.BACKUP_SCRYPT_P,
    }


def decrypt_blob(enc: Dict, password: str) -> bytes:
    if str(enc.get("alg")).upper() != "AESGCM":
        raise BackupError("Unsupported cipher")
    if str(enc.get("kdf")).lower() != "scrypt":
        raise BackupError("Unsupported kdf")
    try:
        salt = bytes.fromhex(enc["salt"])
        nonce = bytes.fromhex(enc["nonce"])
        ct = bytes.fromhex(enc["ct"])
    except (KeyError, ValueError) as exc:
        raise BackupError("encrypted backup is malformed") from exc
    key = _derive_key(password, salt, n=int(enc.get("n", CFG.BACKUP_SCRYPT_N)),
                      r=int(enc.get("r", CFG.BACKUP_SCRYPT_R)), p=int(enc.get("p", CFG.BACKUP_SCRYPT_P)))
    try:
        return AESGCM(key).decrypt(nonce, ct, None)
    except InvalidTag as exc:
        raise BackupError("wrong passphrase or corrupted backup") from exc


# ---------- archive ----------

def _existing_members(paths: SuiPaths) -> List[str]:
    return [m for m in CFG.BACKUP_MEMBERS if (paths.home / m).exists()]


def create_backup(paths: SuiPaths, dest_dir: str | os.PathLike = CFG.BACKUP_DIR,
                  passphrase: Optional[str] = None) -> BackupResult:
    members = _existing_members(paths)
    if not members:
        raise BackupError(f"nothing to back up under {paths.home}")

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name in members:
            tar.add(str(paths.home / name), arcname=name)
    data = buf.getvalue()

    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    stem = ARCHIVE_PREFIX + timestamp_slug()
    if passphrase:
        target = dest / (stem + ENC_SUFFIX)
        payload = json.dumps(encrypt_blob(data, passphrase), separators=(",", ":")).encode("utf-8")
    else:
        target = dest / (stem + PLAIN_SUFFIX)
        payload = data
    atomic_write_bytes(target, payload, mode=0o600)

    size = target.stat().st_size
    log.info("[backup] %s (%s, %d members%s)", target, human_bytes(size), len(members),
             ", encrypted" if passphrase else "")
    return BackupResult(path=str(target), members=tuple(members), size=size, encrypted=bool(passphrase))


def _safe_members(tar: tarfile.TarFile) -> List[tarfile.TarInfo]:
    safe = []
    for info in tar.getmembers():
        p = PurePosixPath(info.name)
        if p.is_absolute() or ".." in p.parts:
            raise BackupError(f"refusing unsafe path in archive: {info.name}")
        if info.issym() or info.islnk():
            link = PurePosixPath(info.linkname)
            if link.is_absolute() or ".." in link.parts:
                raise BackupError(f"refusing unsafe link in archive: {info.name} -> {info.linkname}")
        if info.isdev():
            raise BackupError(f"refusing device node in archive: {info.name}")
        safe.append(info)
    return safe


def read_archive(archive: str | os.PathLike, passphrase: Optional[str] = None) -> bytes:
    src = Path(archive)
    if not src.is_file():
        raise BackupError(f"backup not found: {src}")
    raw = src.read_bytes()
    if src.name.endswith(ENC_SUFFIX):
        if not passphrase:
            raise BackupError("backup is encrypted, a passphrase is required")
        try:
            env = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise BackupError("encrypted backup is malformed") from exc
        return decrypt_blob(env, passphrase)
    return raw


def _tighten_key_modes(paths: SuiPaths) -> None:
    keys = [paths.genesis_key_file, paths.protocol_key, paths.worker_key, paths.account_key, paths.network_key]
    if paths.keystore_dir.is_dir():
        keys += [p for p in paths.keystore_dir.iterdir() if p.is_file()]
    for key in keys:
        if key.is_file():
            os.chmod(key, 0o600)


def restore_backup(archive: str | os.PathLike, target_home: str | os.PathLike,
                   passphrase: Optional[str] = None) -> List[str]:
    data = read_archive(archive, passphrase)
    target = Path(target_home)
    target.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
            members = _safe_members(tar)
            tar.extractall(path=str(target), members=members)
    except tarfile.TarError as exc:
        raise BackupError(f"corrupted backup archive: {exc}") from exc
    _tighten_key_modes(SuiPaths.from_home(target))
    names = sorted({PurePosixPath(m.name).parts[0] for m in members if m.name})
    log.info("[backup] Restored %s into %s", ", ".join(names), target)
    return names


def list_backups(dest_dir: str | os.PathLike = CFG.BACKUP_DIR) -> List[Path]:
    """Newest first."""
    d = Path(dest_dir)
    if not d.is_dir():
        return []
    found = [p for p in d.iterdir()
             if p.name.startswith(ARCHIVE_PREFIX) and (p.name.endswith(PLAIN_SUFFIX) or p.name.endswith(ENC_SUFFIX))]
    return sorted(found, key=lambda p: p.name, reverse=True)
