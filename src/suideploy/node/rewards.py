# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Custom payout policy of the deployed network.

The reward split itself is enforced by the patched ``validator_set.move``
inside the Sui framework; this module only mirrors the two constants for
projections and checks that the patch is present in a source checkout.
"""

from __future__ import annotations

import os, re
from dataclasses import dataclass
from pathlib import Path

from ..utils import config as CFG
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.rewards")

ROLES = ("delegator", "validator")


@dataclass(frozen=True)
class PayoutPolicy:
    delegator_daily_bps: int = CFG.DELEGATOR_DAILY_RATE_BPS
    validator_daily_bps: int = CFG.VALIDATOR_DAILY_RATE_BPS

    def rate_bps(self, role: str) -> int:
        if role == "delegator":
            return self.delegator_daily_bps
        if role == "validator":
            return self.validator_daily_bps
        raise ValueError(f"unknown role: {role}")

    @property
    def validator_bonus_bps(self) -> int:
        return self.validator_daily_bps - self.delegator_daily_bps

    def daily_reward(self, stake_mist: int, role: str = "delegator") -> int:
        if stake_mist < 0:
            raise ValueError("stake must be non-negative")
        return int(stake_mist) * self.rate_bps(role) // CFG.BPS_DENOMINATOR

    def project(self, stake_mist: int, days: int, role: str = "delegator") -> int:
        """Simple (non-compounding) reward over ``days``."""
        return self.daily_reward(stake_mist, role) * max(0, int(days))


# markers left by the payout patch in validator_set.move
_RATE_COMMENT_DELEGATOR = re.compile(r"1%.*day|delegator.*1%")
_RATE_COMMENT_VALIDATOR = re.compile(r"1\.5%.*day|validator.*1\.5%")
_FN_COMPUTE = "compute_unadjusted_reward_distribution"
_FN_DISTRIBUTE = "distribute_reward"
_CONST_BASE = re.compile(r"0\.01|1%")
_CONST_BONUS = re.compile(r"0\.005|0\.5%")


@dataclass(frozen=True)
class PayoutCheck:
    status: str
    reason: str | None = None
    path: str | None = None
    rates_documented: bool = False
    functions_present: bool = False
    rate_constants: bool = False


def check_payout_source(path: str | os.PathLike) -> PayoutCheck:
    p = Path(path)
    if not p.is_file():
        log.error("[payout] validator_set.move not found at %s", p)
        return PayoutCheck(status="failed", reason="file_missing", path=str(p))

    text = p.read_text(encoding="utf-8", errors="replace")
    rates = bool(_RATE_COMMENT_DELEGATOR.search(text) and _RATE_COMMENT_VALIDATOR.search(text))
    funcs = _FN_COMPUTE in text and _FN_DISTRIBUTE in text
    consts = bool(_CONST_BASE.search(text) and _CONST_BONUS.search(text))

    if not funcs:
        status, reason = "failed", "functions_missing"
        log.error("[payout] Required payout functions not found in %s", p)
    elif not rates or not consts:
        status = "warn"
        reason = "rate_comments_missing" if not rates else "rate_constants_missing"
        log.warning("[payout] Custom payout %s not clearly detected (code may still be modified)",
                    "rate comments" if not rates else "rate constants")
    else:
        status, reason = "ok", None
        log.info("[payout] Custom payout rates found in %s", p)
    return PayoutCheck(status=status, reason=reason, path=str(p), rates_documented=rates,
                       functions_present=funcs, rate_constants=consts)


def payout_source_path(repo_dir: str | os.PathLike) -> Path:
    return Path(repo_dir) / CFG.VALIDATOR_SET_MOVE
