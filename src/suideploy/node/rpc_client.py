# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import json, itertools
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Sequence

# ---------------- Local Project ----------------
from ..utils import config as CFG
from ..utils.errors import RpcError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.node.rpc_client")

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json",
                 "User-Agent": CFG.RELEASE_USER_AGENT}


def _post_json(url: str, body: Dict[str, Any], timeout: float) -> Any:
    data = json.dumps(body).encode("utf-8")
    req = urllib.request.Request(url, data=data, headers=_JSON_HEADERS, method="POST")
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        raw = resp.read()
    return json.loads(raw.decode("utf-8"))


class SuiRpcClient:
    """Minimal JSON-RPC 2.0 client for the local fullnode."""

    def __init__(self, url: str = CFG.RPC_URL, timeout: float = CFG.RPC_TIMEOUT):
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _transport(self, body: Dict[str, Any]) -> Any:
        return _post_json(self.url, body, self.timeout)

    def call(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params or [])}
        log.trace("[rpc] -> %s %s", method, body["params"])
        try:
            reply = self._transport(body)
        except urllib.error.HTTPError as exc:
            raise RpcError(f"HTTP {exc.code}", method=method) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise RpcError(f"unreachable: {exc}", method=method) from exc
        except ValueError as exc:
            raise RpcError("invalid JSON reply", method=method) from exc

        if not isinstance(reply, dict):
            raise RpcError("unexpected reply shape", method=method)
        if reply.get("error"):
            err = reply["error"]
            if isinstance(err, dict):
                raise RpcError(str(err.get("message", "error")), code=err.get("code"), method=method)
            raise RpcError(str(err), method=method)
        if "result" not in reply:
            raise RpcError("reply without result", method=method)
        return reply["result"]

    # ---------- helpers ----------

    def chain_identifier(self) -> str:
        return str(self.call("sui_getChainIdentifier"))

    def current_epoch(self) -> Dict[str, Any]:
        return self.call("suix_getCurrentEpoch")

    def latest_system_state(self) -> Dict[str, Any]:
        return self.call("suix_getLatestSuiSystemState")

    def balance(self, address: str, coin_type: str = "0x2::sui::SUI") -> int:
        result = self.call("suix_getBalance", [address, coin_type]) or {}
        return int(result.get("totalBalance", 0))

    def reference_gas_price(self) -> int:
        return int(self.call("suix_getReferenceGasPrice"))

    def total_transaction_blocks(self) -> int:
        return int(self.call("sui_getTotalTransactionBlocks"))

    def active_validator_addresses(self) -> List[str]:
        state = self.latest_system_state() or {}
        return [str(v.get("suiAddress", "")).lower() for v in state.get("activeValidators", [])]


def request_faucet(faucet_url: str, recipient: str, timeout: float = CFG.RPC_TIMEOUT) -> Dict[str, Any]:
    url = faucet_url.rstrip("/") + "/gas"
    try:
        reply = _post_json(url, {"FixedAmountRequest": {"recipient": recipient}}, timeout)
    except urllib.error.HTTPError as exc:
        raise RpcError(f"faucet HTTP {exc.code}", method="faucet") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise RpcError(f"faucet unreachable: {exc}", method="faucet") from exc
    except ValueError as exc:
        raise RpcError("faucet returned invalid JSON", method="faucet") from exc
    if not isinstance(reply, dict):
        raise RpcError("faucet returned unexpected payload", method="faucet")
    if reply.get("error"):
        raise RpcError(str(reply["error"]), method="faucet")
    if not reply.get("transferredGasObjects"):
        raise RpcError("faucet transferred no gas objects", method="faucet")
    return reply


def http_status(url: str, timeout: float = CFG.HTTP_CHECK_TIMEOUT) -> Optional[int]:
    """HTTP status of a GET, ``None`` when nothing answers."""
    req = urllib.request.Request(url, headers={"User-Agent": CFG.RELEASE_USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return int(resp.status)
    except urllib.error.HTTPError as exc:
        return int(exc.code)
    except (urllib.error.URLError, OSError):
        return None
