# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

from typing import Optional, Sequence


class DeployError(Exception):
    """Base class for every failure the CLI reports to the operator."""


class CommandError(DeployError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "", stdout: str = ""):
        self.argv = list(argv)
        self.returncode = int(returncode)
        self.stderr = stderr or ""
        self.stdout = stdout or ""
        tail = self.stderr.strip().splitlines()[-3:] if self.stderr.strip() else []
        detail = (": " + " | ".join(tail)) if tail else ""
        super().__init__(f"command failed ({self.returncode}): {' '.join(self.argv)}{detail}")


class RequirementError(DeployError):
    pass


class GenesisError(DeployError):
    pass


class ExplorerError(DeployError):
    pass


class NginxError(DeployError):
    pass


class RpcError(DeployError):
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        prefix = f"[{method}] " if method else ""
        suffix = f" (code {code})" if code is not None else ""
        super().__init__(f"{prefix}{message}{suffix}")


class BackupError(DeployError):
    pass


class ManifestError(DeployError):
    pass


class TlsError(DeployError):
    pass
