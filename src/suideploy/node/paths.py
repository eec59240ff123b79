# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..utils import config as CFG


@dataclass(frozen=True)
class SuiPaths:
    """Every on-disk location below SUI_HOME."""

    home: Path

    @classmethod
    def from_home(cls, home: str | os.PathLike | None = None) -> "SuiPaths":
        return cls(Path(os.path.expanduser(str(home or CFG.SUI_HOME))).resolve())

    # ---- directories ----
    @property
    def genesis_dir(self) -> Path: return self.home / "genesis"
    @property
    def validator_dir(self) -> Path: return self.home / "validator"
    @property
    def fullnode_dir(self) -> Path: return self.home / "fullnode"
    @property
    def logs_dir(self) -> Path: return self.home / "logs"
    @property
    def explorer_dir(self) -> Path: return self.home / "explorer"
    @property
    def keystore_dir(self) -> Path: return self.home / "keystore"
    @property
    def client_config_dir(self) -> Path: return self.home / CFG.SUI_CLIENT_CONFIG
    @property
    def source_dir(self) -> Path: return self.home / CFG.SOURCE_DIR_NAME

    # ---- genesis ----
    @property
    def genesis_blob(self) -> Path: return self.genesis_dir / "genesis.blob"
    @property
    def genesis_yaml(self) -> Path: return self.genesis_dir / "genesis.yaml"
    @property
    def genesis_config(self) -> Path: return self.home / "genesis_config.yaml"

    # ---- validator ----
    @property
    def validator_config(self) -> Path: return self.validator_dir / "validator.yaml"
    @property
    def protocol_key(self) -> Path: return self.validator_dir / "protocol.key"
    @property
    def worker_key(self) -> Path: return self.validator_dir / "worker.key"
    @property
    def account_key(self) -> Path: return self.validator_dir / "account.key"
    @property
    def network_key(self) -> Path: return self.validator_dir / "network.key"

    # ---- fullnode / faucet ----
    @property
    def fullnode_config(self) -> Path: return self.fullnode_dir / "fullnode.yaml"
    @property
    def faucet_config(self) -> Path: return self.home / "faucet_config.yaml"
    @property
    def faucet_db(self) -> Path: return self.home / "faucet.db"

    # ---- accounts ----
    @property
    def account_info(self) -> Path: return self.home / "account_info.env"
    @property
    def accounts_env(self) -> Path: return self.home / "accounts.env"
    @property
    def genesis_key_file(self) -> Path: return self.home / "genesis_account_key.txt"
    @property
    def client_keystore(self) -> Path: return self.client_config_dir / CFG.KEYSTORE_NAME

    # ---- helper scripts ----
    @property
    def start_script(self) -> Path: return self.home / "start_sui_network.sh"
    @property
    def stop_script(self) -> Path: return self.home / "stop_sui_network.sh"
    @property
    def status_script(self) -> Path: return self.home / "check_sui_status.sh"

    def directories(self) -> list[Path]:
        return [self.home, self.genesis_dir, self.validator_dir, self.fullnode_dir,
                self.keystore_dir, self.logs_dir, self.explorer_dir]

    def ensure(self) -> "SuiPaths":
        for d in self.directories():
            d.mkdir(parents=True, exist_ok=True)
        return self
