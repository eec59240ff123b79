# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os, json, hashlib, tarfile, tempfile, time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from ecdsa import BadSignatureError, SECP256k1, VerifyingKey

# ---------------- Local Project ----------------
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import ManifestError
from ..utils.helpers import atomic_write_text, sha256_file
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.release", stage="binaries")

ProgressCallback = Optional[Callable[[str], None]]

RELEASE_META_PATH = os.path.join(CFG.APP_DATA_DIR, "release.meta.json")


@dataclass(frozen=True)
class ReleaseBootstrapResult:
    status: str
    reason: Optional[str] = None
    version: Optional[str] = None
    bytes_written: int = 0
    source: Optional[str] = None
    duration_s: float = 0.0


def canonical_payload(manifest: dict) -> bytes:
    body = {k: v for k, v in manifest.items() if k != "signature"}
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def verify_manifest_signature(manifest: dict, pubkey_hex: str, require: bool = True) -> bool:
    signature_hex = (manifest.get("signature") or "").strip()
    pubkey_hex = (pubkey_hex or "").strip()
    if not signature_hex or not pubkey_hex:
        return not require
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(pubkey_hex), curve=SECP256k1)
        vk.verify(bytes.fromhex(signature_hex), canonical_payload(manifest), hashfunc=hashlib.sha256)
        return True
    except (BadSignatureError, ValueError) as exc:
        log.warning("[release] manifest signature invalid: %s", exc)
        return False


def fetch_manifest(url: str) -> dict:
    req = urllib.request.Request(url, headers={"User-Agent": CFG.RELEASE_USER_AGENT, "Accept": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=CFG.RELEASE_HTTP_TIMEOUT) as resp:
            raw = resp.read()
    except urllib.error.URLError as exc:
        raise ManifestError(f"manifest fetch failed: {exc}") from exc
    try:
        manifest = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise ManifestError("manifest decode failed") from exc
    if not isinstance(manifest, dict):
        raise ManifestError("manifest is not a JSON object")
    return manifest


def _download(url: str, dest: str, expected_size: int, emit: Callable[[str], None]) -> int:
    req = urllib.request.Request(url, headers={"User-Agent": CFG.RELEASE_USER_AGENT})
    bytes_written = 0
    next_report = 0
    expected = max(0, int(expected_size or 0))
    with urllib.request.urlopen(req, timeout=CFG.RELEASE_HTTP_TIMEOUT) as resp, open(dest, "wb") as handle:
        while True:
            chunk = resp.read(CFG.RELEASE_CHUNK_BYTES)
            if not chunk:
                break
            handle.write(chunk)
            bytes_written += len(chunk)
            if bytes_written >= next_report:
                if expected:
                    emit(f"Downloading release {bytes_written / expected:.0%} ({bytes_written/1_048_576:.1f} MB)")
                    next_report = bytes_written + max(CFG.RELEASE_CHUNK_BYTES * 4, expected // 10)
                else:
                    emit(f"Downloading release {bytes_written/1_048_576:.1f} MB")
                    next_report = bytes_written + CFG.RELEASE_CHUNK_BYTES * 4
    return bytes_written


def extract_binaries(archive: str, out_dir: str) -> Dict[str, str]:
    """Pull the sui binaries out of a release tarball, wherever they sit inside it."""
    found: Dict[str, str] = {}
    with tarfile.open(archive, "r:*") as tar:
        for member in tar.getmembers():
            name = os.path.basename(member.name)
            if not member.isfile() or name not in CFG.SUI_BINARIES or name in found:
                continue
            src = tar.extractfile(member)
            if src is None:
                continue
            target = os.path.join(out_dir, name)
            with src, open(target, "wb") as dst:
                while True:
                    chunk = src.read(1024 * 1024)
                    if not chunk:
                        break
                    dst.write(chunk)
            found[name] = target
    missing = [b for b in CFG.SUI_BINARIES if b not in found]
    if missing:
        raise ManifestError(f"release archive lacks binaries: {', '.join(missing)}")
    return found


def _load_meta(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError):
        return {}


def maybe_install_release(runner: Runner, context: str = "cli", progress_cb: ProgressCallback = None,
                          manifest_url: Optional[str] = None, pubkey_hex: Optional[str] = None,
                          bin_dir: str = CFG.BIN_DIR, meta_path: str = RELEASE_META_PATH) -> ReleaseBootstrapResult:
    ctx = (context or "cli").lower()
    start_time = time.time()
    manifest_url = (CFG.RELEASE_MANIFEST_URL if manifest_url is None else manifest_url).strip()
    pubkey_hex = CFG.RELEASE_PUBKEY_HEX if pubkey_hex is None else pubkey_hex

    if not CFG.RELEASE_BOOTSTRAP_ENABLED:
        return ReleaseBootstrapResult(status="skipped", reason="disabled")
    if not manifest_url:
        return ReleaseBootstrapResult(status="skipped", reason="no_manifest_url")

    def _emit(message: str) -> None:
        if progress_cb:
            progress_cb(message)
        log.info("[release.%s] %s", ctx, message)

    try:
        manifest = fetch_manifest(manifest_url)
    except ManifestError as exc:
        _emit(str(exc))
        return ReleaseBootstrapResult(status="failed", reason="manifest_unavailable")

    if CFG.RELEASE_REQUIRE_SIGNATURE and not manifest.get("signature"):
        return ReleaseBootstrapResult(status="failed", reason="missing_signature")
    if not verify_manifest_signature(manifest, pubkey_hex, require=CFG.RELEASE_REQUIRE_SIGNATURE):
        return ReleaseBootstrapResult(status="failed", reason="signature_invalid")

    version = str(manifest.get("version") or "")
    url = str(manifest.get("url") or "")
    expected_sha = str(manifest.get("sha256") or "").strip().lower()
    expected_size = int(manifest.get("size") or 0)
    generated_at = int(manifest.get("generated_at") or 0)
    if not url:
        return ReleaseBootstrapResult(status="failed", reason="no_archive_url", version=version)
    if generated_at and CFG.RELEASE_MAX_AGE_SECONDS:
        age = max(0, int(time.time()) - generated_at)
        if age > CFG.RELEASE_MAX_AGE_SECONDS:
            log.warning("[release.%s] Manifest too old (%ss)", ctx, age)

    local_meta = _load_meta(meta_path)
    installed = all(os.path.exists(os.path.join(bin_dir, b)) for b in CFG.SUI_BINARIES)
    if installed and expected_sha and local_meta.get("sha256") == expected_sha:
        return ReleaseBootstrapResult(status="skipped", reason="already_current", version=version)

    if runner.dry_run:
        runner.history.append(("release", url))
        return ReleaseBootstrapResult(status="skipped", reason="dry_run", version=version, source=url)

    with tempfile.TemporaryDirectory(prefix="suideploy_release_") as tmp:
        archive = os.path.join(tmp, "release.tar.gz")
        try:
            bytes_written = _download(url, archive, expected_size, _emit)
        except (urllib.error.URLError, OSError) as exc:
            _emit(f"Release download failed: {exc}")
            return ReleaseBootstrapResult(status="failed", reason="download_failed", version=version)

        if expected_size and bytes_written != expected_size:
            return ReleaseBootstrapResult(status="failed", reason="size_mismatch", version=version,
                                          bytes_written=bytes_written)
        actual_sha = sha256_file(archive)
        if expected_sha and actual_sha != expected_sha:
            _emit(f"sha256 mismatch (expected {expected_sha}, got {actual_sha})")
            return ReleaseBootstrapResult(status="failed", reason="sha_mismatch", version=version,
                                          bytes_written=bytes_written)

        try:
            binaries = extract_binaries(archive, tmp)
        except (ManifestError, tarfile.TarError) as exc:
            _emit(f"Release archive rejected: {exc}")
            return ReleaseBootstrapResult(status="failed", reason="bad_archive", version=version)

        for name in CFG.SUI_BINARIES:
            runner.run(["install", "-m", "755", binaries[name], os.path.join(bin_dir, name)], privileged=True)

    Path(meta_path).parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(meta_path, json.dumps({
        "version": version, "sha256": actual_sha, "size": bytes_written,
        "source": url, "installed_at": int(time.time()),
    }, indent=2, sort_keys=True))
    duration = time.time() - start_time
    _emit(f"Release {version or '?'} installed ({bytes_written/1_048_576:.2f} MB in {duration:.1f}s)")
    return ReleaseBootstrapResult(status="installed", version=version, bytes_written=bytes_written,
                                  source=url, duration_s=duration)
