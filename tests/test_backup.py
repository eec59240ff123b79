# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import io
import json
import os
import stat
import tarfile
from pathlib import Path

import pytest

from suideploy.ops import backup
from suideploy.utils.errors import BackupError


@pytest.fixture
def populated(sui_paths):
    sui_paths.ensure()
    sui_paths.genesis_blob.write_bytes(b"\x00genesis")
    sui_paths.validator_config.write_text("validator-address: 0xabc\n")
    sui_paths.account_info.write_text("GENESIS_ACCOUNT_ADDRESS=0xabc\n")
    return sui_paths


def test_plain_backup_and_restore(populated, tmp_path):
    res = backup.create_backup(populated, tmp_path / "backups")
    assert not res.encrypted
    assert res.path.endswith(".tar.gz")
    assert set(res.members) == {"genesis", "validator", "fullnode", "account_info.env", "keystore"}
    assert stat.S_IMODE(os.stat(res.path).st_mode) == 0o600
    assert backup.list_backups(tmp_path / "backups") == [Path(res.path)]

    restored = backup.restore_backup(res.path, tmp_path / "restore")
    assert "genesis" in restored and "account_info.env" in restored
    assert (tmp_path / "restore" / "genesis" / "genesis.blob").read_bytes() == b"\x00genesis"


def test_encrypted_backup(populated, tmp_path):
    res = backup.create_backup(populated, tmp_path / "backups", passphrase="correct horse")
    assert res.encrypted and res.path.endswith(".tar.gz.enc")
    envelope = json.loads(Path(res.path).read_text(encoding="utf-8"))
    assert (envelope["alg"], envelope["kdf"]) == ("AESGCM", "scrypt")

    with pytest.raises(BackupError, match="wrong passphrase"):
        backup.restore_backup(res.path, tmp_path / "restore", passphrase="battery staple")
    with pytest.raises(BackupError, match="passphrase is required"):
        backup.restore_backup(res.path, tmp_path / "restore")

    restored = backup.restore_backup(res.path, tmp_path / "restore", passphrase="correct horse")
    assert "validator" in restored
    assert (tmp_path / "restore" / "validator" / "validator.yaml").read_text().startswith("validator-address")


def test_restore_tightens_key_modes(populated, tmp_path):
    populated.genesis_key_file.write_text("suiprivkey1qexample\n")
    os.chmod(populated.genesis_key_file, 0o644)
    populated.network_key.write_text("AGtleQ==\n")
    os.chmod(populated.network_key, 0o644)
    res = backup.create_backup(populated, tmp_path / "backups")
    assert [p.name for p in (tmp_path / "backups").iterdir()] == [Path(res.path).name]

    backup.restore_backup(res.path, tmp_path / "restore")
    for rel in ("genesis_account_key.txt", "validator/network.key"):
        assert stat.S_IMODE(os.stat(tmp_path / "restore" / rel).st_mode) == 0o600


def test_nothing_to_back_up(sui_paths, tmp_path):
    with pytest.raises(BackupError):
        backup.create_backup(sui_paths, tmp_path / "backups")


def test_traversal_rejected(tmp_path):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        data = b"pwned"
        info = tarfile.TarInfo("../outside.txt")
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))
    archive = tmp_path / "sui_backup_evil.tar.gz"
    archive.write_bytes(buf.getvalue())

    with pytest.raises(BackupError, match="unsafe path"):
        backup.restore_backup(archive, tmp_path / "restore")
    assert not (tmp_path / "outside.txt").exists()


def test_corrupted_archive(tmp_path):
    archive = tmp_path / "sui_backup_bad.tar.gz"
    archive.write_bytes(b"not a gzip stream")
    with pytest.raises(BackupError, match="corrupted"):
        backup.restore_backup(archive, tmp_path / "restore")
