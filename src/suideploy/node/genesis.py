# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import shutil, time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .paths import SuiPaths
from .sui_cli import DRY_RUN_ADDRESS, SuiCli
from ..utils import config as CFG
from ..utils.errors import CommandError, GenesisError
from ..utils.helpers import atomic_write_text, parse_env_file, random_hex, upsert_env_file
from ..utils.sui_logging import get_ctx_logger
from ..wallet.keys import KeyPair, append_to_keystore, encode_suiprivkey, generate_keypair

log = get_ctx_logger("suideploy.node.genesis", stage="genesis")

GENESIS_HEADER = (
    "# Custom Sui Genesis Configuration\n"
    "# Modified payout distribution: 1% delegators, 1.5% validators\n"
)


@dataclass(frozen=True)
class GenesisAccount:
    label: str
    address: str
    balance_mist: int
    scheme: str = "secp256k1"
    env_key: str = ""


@dataclass
class AccountSet:
    accounts: List[GenesisAccount]
    local_keys: Dict[str, KeyPair] = field(default_factory=dict)

    def by_label(self, label: str) -> GenesisAccount:
        for acct in self.accounts:
            if acct.label == label:
                return acct
        raise KeyError(label)


@dataclass(frozen=True)
class GenesisResult:
    status: str
    method: str
    reason: Optional[str] = None


ACCOUNT_PLAN = (
    # label,     scheme,      balance,                 env key
    ("genesis",  "secp256k1", CFG.PREMINE_MIST,        "GENESIS_ADDRESS"),
    ("faucet",   "ed25519",   CFG.FAUCET_ACCOUNT_MIST, "FAUCET_ADDRESS"),
    ("treasury", "secp256k1", CFG.TREASURY_MIST,       "TREASURY_ADDRESS"),
)


def _new_address(cli: SuiCli, paths: SuiPaths, label: str, scheme: str,
                 local_keys: Dict[str, KeyPair]) -> str:
    try:
        return cli.new_address(scheme)
    except (CommandError, GenesisError) as exc:
        log.warning("[genesis] sui CLI could not create the %s address (%s), generating locally", label, exc)
    kp = generate_keypair(scheme)
    append_to_keystore(paths.keystore_dir / CFG.KEYSTORE_NAME, kp)
    local_keys[label] = kp
    return kp.address


def _recorded(path) -> Dict[str, str]:
    """Env file values, minus placeholder addresses left by older dry runs."""
    return {k: v for k, v in parse_env_file(path).items() if v != DRY_RUN_ADDRESS}


def create_accounts(cli: SuiCli, paths: SuiPaths) -> AccountSet:
    """Create (or reuse) the genesis, faucet and treasury addresses."""
    existing = _recorded(paths.accounts_env)
    local_keys: Dict[str, KeyPair] = {}
    accounts: List[GenesisAccount] = []
    for label, scheme, balance, env_key in ACCOUNT_PLAN:
        address = existing.get(env_key)
        if address:
            log.info("[genesis] Reusing %s account %s", label, address)
        else:
            address = _new_address(cli, paths, label, scheme, local_keys)
            log.info("[genesis] Created %s account %s", label, address)
        accounts.append(GenesisAccount(label=label, address=address, balance_mist=balance,
                                       scheme=scheme, env_key=env_key))

    if not cli.runner.dry_run:
        upsert_env_file(paths.accounts_env, {a.env_key: a.address for a in accounts})
        upsert_env_file(paths.account_info, {"GENESIS_ACCOUNT_ADDRESS": accounts[0].address})
    return AccountSet(accounts=accounts, local_keys=local_keys)


def create_validator_account(cli: SuiCli, paths: SuiPaths, fallback_address: str) -> str:
    existing = _recorded(paths.account_info).get("VALIDATOR_ADDRESS")
    if existing:
        return existing
    try:
        address = cli.new_address("secp256k1")
    except (CommandError, GenesisError) as exc:
        log.warning("[genesis] Standard validator creation failed (%s), using genesis account %s",
                    exc, fallback_address)
        address = fallback_address
    if not cli.runner.dry_run:
        upsert_env_file(paths.account_info, {"VALIDATOR_ADDRESS": address})
    log.info("[genesis] Validator address %s", address)
    return address


def _gas_object(owner: str, balance: int) -> Dict[str, Any]:
    return {
        "object_id": random_hex(16),
        "version": 1,
        "digest": random_hex(16),
        "owner": owner,
        "balance": int(balance),
    }


def build_genesis_config(accounts: List[GenesisAccount], validator_address: str,
                         host: str = "127.0.0.1", chain_start_ms: Optional[int] = None) -> Dict[str, Any]:
    if chain_start_ms is None:
        chain_start_ms = int(time.time() * 1000)
    return {
        "protocol_version": CFG.PROTOCOL_VERSION,
        "chain_start_timestamp_ms": int(chain_start_ms),
        "epoch_duration_ms": CFG.EPOCH_DURATION_MS,
        "parameters": dict(CFG.GENESIS_PARAMETERS),
        "accounts": [
            {"address": a.address, "gas_objects": [_gas_object(a.address, a.balance_mist)]}
            for a in accounts
        ],
        "validators": [{
            "name": "Genesis Validator",
            "description": "Initial validator with custom payout distribution",
            "image_url": "https://example.com/validator.png",
            "project_url": "https://example.com",
            "network_address": f"/ip4/{host}/tcp/{CFG.PORT_VALIDATOR_NETWORK}",
            "p2p_address": f"/ip4/{host}/tcp/{CFG.PORT_P2P}",
            "primary_address": f"/ip4/{host}/tcp/{CFG.PORT_VALIDATOR_PRIMARY}",
            "worker_address": f"/ip4/{host}/tcp/{CFG.PORT_VALIDATOR_WORKER}",
            "account_address": validator_address,
            "protocol_key": "PLACEHOLDER_PROTOCOL_KEY",
            "worker_key": "PLACEHOLDER_WORKER_KEY",
            "network_key": "PLACEHOLDER_NETWORK_KEY",
            "proof_of_possession": "PLACEHOLDER_POP",
            "gas_price": CFG.VALIDATOR_GAS_PRICE,
            "commission_rate": CFG.VALIDATOR_COMMISSION_RATE,
            "next_epoch_stake": CFG.VALIDATOR_STAKE_MIST,
        }],
        "move_packages": [{"name": name, "path": path} for name, path in CFG.MOVE_PACKAGES],
        "feature_flags": list(CFG.FEATURE_FLAGS),
    }


def total_allocation(doc: Dict[str, Any]) -> int:
    return sum(int(obj["balance"]) for acct in doc.get("accounts", []) for obj in acct.get("gas_objects", []))


def render_genesis_config(doc: Dict[str, Any]) -> str:
    return GENESIS_HEADER + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def write_genesis_config(paths: SuiPaths, doc: Dict[str, Any], runner=None) -> None:
    body = render_genesis_config(doc)
    if runner is not None:
        runner.write_file(paths.genesis_config, body)
    else:
        atomic_write_text(paths.genesis_config, body)
    log.info("[genesis] Genesis configuration written to %s", paths.genesis_config)


def run_genesis(cli: SuiCli, paths: SuiPaths) -> GenesisResult:
    """Three attempts: with faucet, without faucet, then a minimal epoch-0 stub."""
    paths.genesis_dir.mkdir(parents=True, exist_ok=True)
    try:
        cli.genesis(str(paths.genesis_dir), with_faucet=True)
        return GenesisResult(status="ok", method="with_faucet")
    except CommandError as exc:
        log.warning("[genesis] Standard genesis creation failed, trying alternative: %s", exc)
    try:
        cli.genesis(str(paths.genesis_dir), with_faucet=False)
        return GenesisResult(status="ok", method="no_faucet")
    except CommandError as exc:
        log.warning("[genesis] Alternative genesis creation failed, using minimal setup: %s", exc)
    atomic_write_text(paths.genesis_yaml, "epoch: 0\n")
    return GenesisResult(status="warn", method="minimal", reason="sui_genesis_failed")


def export_genesis_key(cli: SuiCli, paths: SuiPaths, address: str,
                       local_key: Optional[KeyPair] = None) -> str:
    """Persist the genesis account key (0600). Returns how it was obtained."""
    target = paths.genesis_key_file
    if cli.runner.dry_run:
        return "dry-run"
    if local_key is not None:
        atomic_write_text(target, encode_suiprivkey(local_key) + "\n", mode=0o600)
        return "local"
    try:
        exported = cli.export_key(address)
        if exported:
            atomic_write_text(target, exported + "\n", mode=0o600)
            return "keytool"
    except CommandError as exc:
        log.warning("[genesis] keytool export failed: %s", exc)
    for keystore in (paths.client_keystore, paths.keystore_dir / CFG.KEYSTORE_NAME):
        if keystore.exists():
            shutil.copyfile(keystore, target)
            target.chmod(0o600)
            log.warning("[genesis] Copied keystore %s as the genesis key backup", keystore)
            return "keystore"
    raise GenesisError(f"no key material found for genesis account {address}")


@dataclass(frozen=True)
class GenesisSummary:
    accounts: List[GenesisAccount]
    validator_address: str
    result: GenesisResult
    key_source: str


def create_genesis(cli: SuiCli, paths: SuiPaths, host: str = "127.0.0.1") -> GenesisSummary:
    paths.ensure()
    cli.ensure_client_config(paths.client_config_dir)
    acct_set = create_accounts(cli, paths)
    genesis_acct = acct_set.by_label("genesis")
    validator = create_validator_account(cli, paths, genesis_acct.address)

    doc = build_genesis_config(acct_set.accounts, validator, host=host)
    write_genesis_config(paths, doc, cli.runner)
    result = run_genesis(cli, paths)
    key_source = export_genesis_key(cli, paths, genesis_acct.address, acct_set.local_keys.get("genesis"))
    log.info("[genesis] Genesis ready (method=%s, premine=%s MIST)", result.method, genesis_acct.balance_mist)
    return GenesisSummary(accounts=acct_set.accounts, validator_address=validator,
                          result=result, key_source=key_source)
