# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import importlib.util
import io
import json
import os
import tarfile

import pytest
from ecdsa import SECP256k1, SigningKey

from conftest import PROJECT_ROOT, FakeRunner
from suideploy.node import release
from suideploy.utils.errors import ManifestError

_spec = importlib.util.spec_from_file_location(
    "generate_release_manifest", os.path.join(PROJECT_ROOT, "tools", "generate_release_manifest.py"))
manifest_tool = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(manifest_tool)


def _archive(path, names=("sui", "sui-node", "sui-faucet")):
    with tarfile.open(path, "w:gz") as tar:
        for name in names:
            data = f"#!/bin/sh\necho {name}\n".encode()
            info = tarfile.TarInfo(f"sui-release/bin/{name}")
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def signed_release(tmp_path):
    archive = _archive(tmp_path / "sui-release.tar.gz")
    sk = SigningKey.generate(curve=SECP256k1)
    manifest = manifest_tool.build_manifest(archive, "testnet-v1.20.0", archive.as_uri(), timestamp=1_700_000_000)
    manifest = manifest_tool.sign_manifest(manifest, sk)
    manifest_path = tmp_path / "release.manifest.json"
    manifest_path.write_text(json.dumps(manifest))
    return manifest_path, manifest, sk.get_verifying_key().to_string().hex()


def test_manifest_fields(signed_release):
    _, manifest, pub = signed_release
    assert manifest["binaries"] == ["sui", "sui-faucet", "sui-node"]
    assert len(manifest["sha256"]) == 64
    assert release.verify_manifest_signature(manifest, pub)


def test_tampered_manifest_rejected(signed_release):
    _, manifest, pub = signed_release
    tampered = dict(manifest, url="http://evil.example.com/sui.tar.gz")
    assert not release.verify_manifest_signature(tampered, pub)
    unsigned = {k: v for k, v in manifest.items() if k != "signature"}
    assert not release.verify_manifest_signature(unsigned, pub)
    assert release.verify_manifest_signature(unsigned, pub, require=False)


def test_manifest_requires_all_binaries(tmp_path):
    archive = _archive(tmp_path / "partial.tar.gz", names=("sui",))
    with pytest.raises(ValueError):
        manifest_tool.build_manifest(archive, "v1", "http://example.com/x.tar.gz")


def test_extract_binaries_finds_nested_members(tmp_path):
    archive = _archive(tmp_path / "rel.tar.gz")
    out = tmp_path / "out"
    out.mkdir()
    found = release.extract_binaries(str(archive), str(out))
    assert sorted(found) == ["sui", "sui-faucet", "sui-node"]
    assert (out / "sui-node").read_text().endswith("echo sui-node\n")

    partial = _archive(tmp_path / "partial.tar.gz", names=("sui", "sui-node"))
    with pytest.raises(ManifestError):
        release.extract_binaries(str(partial), str(out))


def test_install_from_signed_manifest(signed_release, tmp_path):
    manifest_path, manifest, pub = signed_release
    runner = FakeRunner()
    meta = tmp_path / "meta" / "release.meta.json"
    res = release.maybe_install_release(runner, manifest_url=manifest_path.as_uri(), pubkey_hex=pub,
                                        bin_dir=str(tmp_path / "bin"), meta_path=str(meta))
    assert (res.status, res.version) == ("installed", "testnet-v1.20.0")
    installs = [c for c in runner.commands() if c[0] == "install"]
    assert [os.path.basename(c[-1]) for c in installs] == ["sui", "sui-node", "sui-faucet"]
    assert json.loads(meta.read_text())["sha256"] == manifest["sha256"]


def test_bad_signature_blocks_install(signed_release, tmp_path):
    manifest_path, _, _ = signed_release
    other = SigningKey.generate(curve=SECP256k1).get_verifying_key().to_string().hex()
    res = release.maybe_install_release(FakeRunner(), manifest_url=manifest_path.as_uri(), pubkey_hex=other,
                                        bin_dir=str(tmp_path / "bin"), meta_path=str(tmp_path / "meta.json"))
    assert (res.status, res.reason) == ("failed", "signature_invalid")


def test_sha_mismatch(signed_release, tmp_path):
    manifest_path, manifest, pub = signed_release
    _archive(tmp_path / "sui-release.tar.gz", names=("sui", "sui-node", "sui-faucet", "sui-tool"))
    res = release.maybe_install_release(FakeRunner(), manifest_url=manifest_path.as_uri(), pubkey_hex=pub,
                                        bin_dir=str(tmp_path / "bin"), meta_path=str(tmp_path / "meta.json"))
    assert res.status == "failed"
    assert res.reason in ("size_mismatch", "sha_mismatch")


def test_no_manifest_url_skips():
    res = release.maybe_install_release(FakeRunner(), manifest_url="")
    assert (res.status, res.reason) == ("skipped", "no_manifest_url")
