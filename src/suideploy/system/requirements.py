# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import List

import psutil

from ..utils import config as CFG
from ..utils.errors import RequirementError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.system.requirements", stage="requirements")

_GIB = 1024 ** 3


@dataclass(frozen=True)
class RequirementsReport:
    os_name: str
    supported: bool
    memory_gb: int
    disk_free_gb: int
    warnings: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.supported:
            return "failed"
        return "warn" if self.warnings else "ok"


def check_requirements(disk_path: str = "/", strict: bool = True) -> RequirementsReport:
    os_name = platform.system()
    supported = os_name in CFG.SUPPORTED_SYSTEMS
    if not supported:
        log.error("[requirements] Unsupported operating system: %s", os_name)
        if strict:
            raise RequirementError(f"unsupported operating system: {os_name}")
    else:
        log.info("[requirements] Detected %s", os_name)

    warnings: List[str] = []
    memory_gb = int(psutil.virtual_memory().total // _GIB)
    if memory_gb < CFG.MIN_RAM_GB:
        msg = f"Less than {CFG.MIN_RAM_GB}GB RAM detected ({memory_gb} GB). Performance may be impacted."
        warnings.append(msg)
        log.warning("[requirements] %s", msg)
    else:
        log.info("[requirements] Memory check passed: %sGB RAM available", memory_gb)

    disk_free_gb = int(psutil.disk_usage(disk_path).free // _GIB)
    if disk_free_gb < CFG.MIN_DISK_GB:
        msg = f"Less than {CFG.MIN_DISK_GB}GB disk space available ({disk_free_gb}GB). Consider freeing up space."
        warnings.append(msg)
        log.warning("[requirements] %s", msg)
    else:
        log.info("[requirements] Disk space check passed: %sGB available", disk_free_gb)

    return RequirementsReport(
        os_name=os_name, supported=supported, memory_gb=memory_gb,
        disk_free_gb=disk_free_gb, warnings=warnings,
    )
