# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE
# Refs: Sui address derivation (BLAKE2b-256 over flag||pubkey); SLIP-0010; BIP39; BIP173

from __future__ import annotations

import os, json, base64, hashlib, hmac
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from bech32 import bech32_decode, bech32_encode, convertbits
from ecdsa import SECP256k1, SigningKey as EcdsaSigningKey
from mnemonic import Mnemonic
from nacl.signing import SigningKey as Ed25519SigningKey

from ..node.paths import SuiPaths
from ..utils.helpers import atomic_write_text
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.wallet.keys")

SCHEME_FLAGS: Dict[str, int] = {"ed25519": 0x00, "secp256k1": 0x01}
FLAG_SCHEMES: Dict[int, str] = {v: k for k, v in SCHEME_FLAGS.items()}
SUIPRIVKEY_HRP = "suiprivkey"
SUI_DERIVATION_PATH = (44, 784, 0, 0, 0)  # m/44'/784'/0'/0'/0', all hardened for ed25519
_HARDENED = 0x80000000


@dataclass(frozen=True)
class KeyPair:
    scheme: str
    private_key: bytes
    public_key: bytes

    @property
    def flag(self) -> int:
        return SCHEME_FLAGS[self.scheme]

    @property
    def address(self) -> str:
        digest = hashlib.blake2b(bytes([self.flag]) + self.public_key, digest_size=32).digest()
        return "0x" + digest.hex()

    def __repr__(self) -> str:
        return f"KeyPair(scheme={self.scheme!r}, address={self.address!r})"


def _public_from_private(scheme: str, secret: bytes) -> bytes:
    if scheme == "ed25519":
        return bytes(Ed25519SigningKey(secret).verify_key)
    if scheme == "secp256k1":
        sk = EcdsaSigningKey.from_string(secret, curve=SECP256k1)
        return sk.get_verifying_key().to_string("compressed")
    raise ValueError(f"unsupported key scheme: {scheme}")


def keypair_from_secret(scheme: str, secret: bytes) -> KeyPair:
    if len(secret) != 32:
        raise ValueError("private key must be 32 bytes")
    return KeyPair(scheme=scheme, private_key=bytes(secret), public_key=_public_from_private(scheme, secret))


def generate_keypair(scheme: str = "ed25519") -> KeyPair:
    if scheme == "ed25519":
        secret = bytes(Ed25519SigningKey.generate())
    elif scheme == "secp256k1":
        secret = EcdsaSigningKey.generate(curve=SECP256k1).to_string()
    else:
        raise ValueError(f"unsupported key scheme: {scheme}")
    return keypair_from_secret(scheme, secret)


# -----------------------------
# Encodings
# -----------------------------

def encode_suiprivkey(kp: KeyPair) -> str:
    data = convertbits(bytes([kp.flag]) + kp.private_key, 8, 5)
    return bech32_encode(SUIPRIVKEY_HRP, data)


def decode_suiprivkey(value: str) -> KeyPair:
    hrp, data = bech32_decode(value.strip())
    if hrp != SUIPRIVKEY_HRP or data is None:
        raise ValueError("not a suiprivkey string")
    raw = bytes(convertbits(data, 5, 8, False) or b"")
    if len(raw) != 33 or raw[0] not in FLAG_SCHEMES:
        raise ValueError("malformed suiprivkey payload")
    return keypair_from_secret(FLAG_SCHEMES[raw[0]], raw[1:])


def keystore_entry(kp: KeyPair) -> str:
    """sui.keystore entry: base64(flag || secret)."""
    return base64.b64encode(bytes([kp.flag]) + kp.private_key).decode("ascii")


def keypair_from_keystore_entry(entry: str) -> KeyPair:
    raw = base64.b64decode(entry)
    if len(raw) != 33 or raw[0] not in FLAG_SCHEMES:
        raise ValueError("unsupported keystore entry")
    return keypair_from_secret(FLAG_SCHEMES[raw[0]], raw[1:])


def append_to_keystore(path: str | os.PathLike, kp: KeyPair) -> bool:
    p = Path(path)
    entries: List[str] = json.loads(p.read_text(encoding="utf-8")) if p.exists() else []
    entry = keystore_entry(kp)
    if entry in entries:
        return False
    entries.append(entry)
    atomic_write_text(p, json.dumps(entries, indent=2), mode=0o600)
    return True


# -----------------------------
# Mnemonics (BIP39 + SLIP-0010)
# -----------------------------

def new_mnemonic(strength: int = 128) -> str:
    return Mnemonic("english").generate(strength=strength)


def _slip10_ed25519(seed: bytes, path=SUI_DERIVATION_PATH) -> bytes:
    digest = hmac.new(b"ed25519 seed", seed, hashlib.sha512).digest()
    key, chain = digest[:32], digest[32:]
    for index in path:
        data = b"\x00" + key + (index | _HARDENED).to_bytes(4, "big")
        digest = hmac.new(chain, data, hashlib.sha512).digest()
        key, chain = digest[:32], digest[32:]
    return key


def keypair_from_mnemonic(phrase: str, passphrase: str = "") -> KeyPair:
    m = Mnemonic("english")
    if not m.check(phrase):
        raise ValueError("invalid BIP39 mnemonic")
    seed = Mnemonic.to_seed(phrase, passphrase=passphrase)
    return keypair_from_secret("ed25519", _slip10_ed25519(seed))


# -----------------------------
# Key files
# -----------------------------

def write_key_file(path: str | os.PathLike, kp: KeyPair) -> Path:
    return atomic_write_text(path, keystore_entry(kp) + "\n", mode=0o600)


def load_key_file(path: str | os.PathLike) -> KeyPair:
    return keypair_from_keystore_entry(Path(path).read_text(encoding="utf-8").strip())


VALIDATOR_KEY_SCHEMES = {
    "protocol": "ed25519",  # placeholder until a BLS12-381 keytool is available on the host
    "worker": "ed25519",
    "account": "secp256k1",
    "network": "ed25519",
}


def generate_validator_keys(paths: SuiPaths) -> Dict[str, str]:
    """Create missing validator key files; existing files are never overwritten."""
    targets = {
        "protocol": paths.protocol_key,
        "worker": paths.worker_key,
        "account": paths.account_key,
        "network": paths.network_key,
    }
    out: Dict[str, str] = {}
    for role, target in targets.items():
        if target.exists():
            out[role] = load_key_file(target).address
            log.debug("[keys] Keeping existing %s key at %s", role, target)
            continue
        kp = generate_keypair(VALIDATOR_KEY_SCHEMES[role])
        write_key_file(target, kp)
        out[role] = kp.address
        log.info("[keys] Generated %s key (%s) for %s", role, kp.scheme, kp.address)
    return out
