#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Generate (and optionally sign) the release manifest for a prebuilt Sui
binaries archive. Run this on the machine that publishes the tarball so
deploy hosts can verify size, sha256 and signature before installing.
"""

from __future__ import annotations

import argparse
import hashlib
import json
import sys
import tarfile
import time
from pathlib import Path
from typing import Any, Dict, List

from ecdsa import SECP256k1, SigningKey

from suideploy.node.release import canonical_payload
from suideploy.utils import config as CFG
from suideploy.utils.helpers import sha256_file


def _load_signing_key(raw: str) -> SigningKey:
    candidate = Path(raw)
    key_hex = candidate.read_text(encoding="utf-8").strip() if candidate.exists() else raw.strip()
    if len(key_hex) != 64:
        raise ValueError("private key must be 32 bytes of hex (64 characters)")
    return SigningKey.from_string(bytes.fromhex(key_hex), curve=SECP256k1)


def archive_binaries(path: Path) -> List[str]:
    with tarfile.open(path, "r:*") as tar:
        names = {Path(m.name).name for m in tar.getmembers() if m.isfile()}
    return sorted(n for n in CFG.SUI_BINARIES if n in names)


def build_manifest(archive: Path, version: str, url: str, note: str | None = None,
                   timestamp: int | None = None) -> Dict[str, Any]:
    binaries = archive_binaries(archive)
    missing = [b for b in CFG.SUI_BINARIES if b not in binaries]
    if missing:
        raise ValueError(f"archive is missing {', '.join(missing)}")
    manifest: Dict[str, Any] = {
        "version": version,
        "url": url,
        "size": int(archive.stat().st_size),
        "sha256": sha256_file(archive),
        "binaries": binaries,
        "generated_at": int(timestamp if timestamp is not None else time.time()),
    }
    if note:
        manifest["note"] = note
    return manifest


def sign_manifest(manifest: Dict[str, Any], sk: SigningKey) -> Dict[str, Any]:
    signed = dict(manifest)
    signed["signature"] = sk.sign(canonical_payload(manifest), hashfunc=hashlib.sha256).hex()
    return signed


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a release manifest for a Sui binaries archive")
    parser.add_argument("archive", nargs="?", help="tar.gz holding sui, sui-node and sui-faucet")
    parser.add_argument("--version", help="Release version string (e.g. testnet-v1.20.0)")
    parser.add_argument("--url", help="Public URL the archive will be served from")
    parser.add_argument("--output", default="release.manifest.json", help="Output manifest file")
    parser.add_argument("--timestamp", type=int, help="Unix timestamp to record as generated_at")
    parser.add_argument("--note", help="Free-form note stored in the manifest")
    parser.add_argument("--sign-key", help="Hex private key (or a file holding it) to sign the manifest")
    parser.add_argument("--new-key", action="store_true", help="Print a fresh signing keypair and exit")
    args = parser.parse_args()

    if args.new_key:
        sk = SigningKey.generate(curve=SECP256k1)
        print(f"private: {sk.to_string().hex()}")
        print(f"public : {sk.get_verifying_key().to_string().hex()}")
        return 0

    if not args.archive or not args.version or not args.url:
        parser.error("archive, --version and --url are required")
    archive = Path(args.archive).expanduser().resolve()
    if not archive.exists():
        parser.error(f"archive not found: {archive}")

    try:
        manifest = build_manifest(archive, args.version, args.url, args.note, args.timestamp)
    except (ValueError, tarfile.TarError) as exc:
        parser.error(str(exc))

    if args.sign_key:
        try:
            sk = _load_signing_key(args.sign_key)
        except ValueError as exc:
            parser.error(f"could not load signing key: {exc}")
        manifest = sign_manifest(manifest, sk)

    output_path = Path(args.output).expanduser().resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8")
    print(f"Manifest written to {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
