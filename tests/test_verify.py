# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import urllib.error
from types import SimpleNamespace

import pytest

from conftest import FakeRunner
from suideploy.node import rpc_client
from suideploy.node.rpc_client import SuiRpcClient
from suideploy.ops import status, verify
from suideploy.utils import config as CFG
from suideploy.utils.errors import RpcError
from suideploy.utils.helpers import upsert_env_file

GENESIS = "0x" + "1a" * 32
VALIDATOR = "0x" + "2b" * 32


class FakeRpc(SuiRpcClient):
    def __init__(self, results=None, errors=()):
        super().__init__(url="http://127.0.0.1:1")
        self.results = {
            "sui_getChainIdentifier": "4c78adac",
            "suix_getCurrentEpoch": {"epoch": "3"},
            "suix_getLatestSuiSystemState": {"activeValidators": [{"suiAddress": VALIDATOR.upper().replace("0X", "0x")}]},
            "suix_getBalance": {"totalBalance": str(CFG.PREMINE_MIST)},
            "suix_getReferenceGasPrice": "1000",
            "sui_getTotalTransactionBlocks": "12345",
        }
        self.results.update(results or {})
        self.errors = set(errors)
        self.sent = []

    def _transport(self, body):
        self.sent.append(body)
        method = body["method"]
        if method in self.errors:
            raise urllib.error.URLError("connection refused")
        return {"jsonrpc": "2.0", "id": body["id"], "result": self.results[method]}


def test_rpc_client_envelope():
    rpc = FakeRpc()
    assert rpc.chain_identifier() == "4c78adac"
    assert rpc.balance(GENESIS) == CFG.PREMINE_MIST
    assert rpc.sent[-1]["params"] == [GENESIS, "0x2::sui::SUI"]
    assert [b["id"] for b in rpc.sent] == [1, 2]
    assert rpc.active_validator_addresses() == [VALIDATOR]


def test_rpc_error_reply():
    class Failing(SuiRpcClient):
        def _transport(self, body):
            return {"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "Method not found"}}

    with pytest.raises(RpcError) as excinfo:
        Failing().call("sui_nope")
    assert excinfo.value.code == -32601


def test_unreachable_rpc_maps_to_rpc_error():
    with pytest.raises(RpcError, match="unreachable"):
        FakeRpc(errors=["sui_getChainIdentifier"]).chain_identifier()


@pytest.mark.parametrize("reply", [{}, {"transferredGasObjects": [], "error": None}, {"error": "rate limited"}])
def test_faucet_reply_without_gas_is_an_error(monkeypatch, reply):
    monkeypatch.setattr(rpc_client, "_post_json", lambda url, body, timeout: reply)
    with pytest.raises(RpcError):
        rpc_client.request_faucet(CFG.FAUCET_URL, GENESIS)


def test_faucet_request_body(monkeypatch):
    sent = []
    gas = {"transferredGasObjects": [{"amount": CFG.FAUCET_AMOUNT_MIST, "id": "0x" + "3c" * 32}], "error": None}
    monkeypatch.setattr(rpc_client, "_post_json", lambda url, body, timeout: sent.append((url, body)) or gas)
    assert rpc_client.request_faucet("http://127.0.0.1:5003/", GENESIS) == gas
    assert sent == [("http://127.0.0.1:5003/gas", {"FixedAmountRequest": {"recipient": GENESIS}})]


@pytest.fixture
def calm_host(monkeypatch):
    monkeypatch.setattr(verify.psutil, "virtual_memory", lambda: SimpleNamespace(percent=40.0))
    monkeypatch.setattr(verify.psutil, "disk_usage", lambda path: SimpleNamespace(percent=50.0))


@pytest.fixture
def deployed(sui_paths):
    sui_paths.ensure()
    upsert_env_file(sui_paths.account_info, {"GENESIS_ACCOUNT_ADDRESS": GENESIS, "VALIDATOR_ADDRESS": VALIDATOR})
    return sui_paths


def _active_runner():
    runner = FakeRunner()
    runner.respond("systemctl", "is-active", stdout="active\n")
    return runner


def test_healthy_deployment(deployed, calm_host, tmp_path):
    faucet_calls = []
    report = verify.verify_deployment(
        deployed, _active_runner(), rpc=FakeRpc(), explorer_port=3011,
        http_get=lambda url: 405 if url.endswith(":9000") else 200,
        faucet=lambda url, recipient: faucet_calls.append((url, recipient)),
    )
    assert report.status == "ok", [c for c in report.checks if c.status != "ok"]
    names = {c.name for c in report.checks}
    assert {"rpc:chain_identifier", "genesis:balance", "validator:active", "faucet:request"} <= names
    assert faucet_calls == [(CFG.FAUCET_URL, GENESIS)]
    # no sui checkout and no journalctl on the fake host
    skipped = {c.name for c in report.checks if c.status == "skipped"}
    assert {"payout:source", "logs:journal"} <= skipped

    out = verify.write_health_report(report, tmp_path / "reports")
    text = out.read_text()
    assert out.name.startswith("sui_health_report_")
    assert "Overall: OK" in text


def test_unreachable_rpc_fails_verification(deployed, calm_host):
    report = verify.verify_deployment(
        deployed, _active_runner(), rpc=FakeRpc(errors=["sui_getChainIdentifier"]),
        http_get=lambda url: None, request_gas=False, journal=False,
    )
    assert report.status == "failed"
    names = [c.name for c in report.checks]
    assert "genesis:balance" not in names
    assert report.counts()["failed"] >= 5


def test_low_balance_and_missing_validator(deployed, calm_host):
    rpc = FakeRpc(results={
        "suix_getBalance": {"totalBalance": "5"},
        "suix_getLatestSuiSystemState": {"activeValidators": []},
    })
    report = verify.verify_deployment(deployed, _active_runner(), rpc=rpc, http_get=lambda url: 200,
                                      request_gas=False, journal=False)
    by_name = {c.name: c.status for c in report.checks}
    assert by_name["genesis:balance"] == "warn"
    assert by_name["rpc:system_state"] == "warn"
    assert by_name["validator:active"] == "failed"


def test_journal_errors_warn(deployed, calm_host):
    runner = FakeRunner(tools=["journalctl"])
    runner.respond("systemctl", "is-active", stdout="active\n")
    runner.respond("journalctl", stdout="ERROR consensus stalled\nWARN slow peer\nok\n")
    report = verify.verify_deployment(deployed, runner, rpc=FakeRpc(), http_get=lambda url: 200,
                                      request_gas=False, services=["sui-fullnode"])
    check = next(c for c in report.checks if c.name == "logs:sui-fullnode")
    assert check.status == "warn"
    assert check.detail.startswith("1 errors, 1 warnings")


def test_dry_run_services_are_skipped(deployed, calm_host):
    report = verify.verify_deployment(deployed, FakeRunner(dry_run=True), rpc=FakeRpc(), http_get=lambda url: 200,
                                      request_gas=False, journal=False, services=["sui-fullnode"])
    assert next(c for c in report.checks if c.name == "service:sui-fullnode").status == "skipped"


def test_report_status_ordering():
    report = verify.VerificationReport()
    assert report.status == "skipped"
    report.add("a", "skipped")
    assert report.status == "ok"
    report.add("b", "warn")
    report.add("c", "ok")
    assert report.status == "warn"
    report.add("d", "failed")
    assert report.status == "failed"


def test_format_status(monkeypatch, sui_paths):
    monkeypatch.setattr(status, "sui_processes", lambda: [(42, "sui-node")])
    monkeypatch.setattr(status, "is_listening", lambda port: port == CFG.PORT_RPC)
    runner = FakeRunner()
    runner.respond("sui", "--version", stdout="sui 1.20.0-abc\n")
    runner.respond("sui", "client", "active-address", stdout=GENESIS + "\n")
    report = status.collect_status(sui_paths, runner, rpc=FakeRpc())
    assert report.sui_version == "1.20.0-abc"
    lines = status.format_status(report)
    assert lines[0] == "=== Sui Network Status ==="
    assert "processes   : sui-node[42]" in lines
    assert "chain id    : 4c78adac" in lines
    assert "active addr : " + GENESIS in lines
    assert "gas price   : 1000 MIST" in lines
    assert "tx blocks   : 12,345" in lines
    assert any("missing" in line for line in lines)


def test_empty_faucet_reply_fails_verification(deployed, calm_host, monkeypatch):
    monkeypatch.setattr(rpc_client, "_post_json", lambda url, body, timeout: {"transferredGasObjects": []})
    report = verify.verify_deployment(deployed, _active_runner(), rpc=FakeRpc(), http_get=lambda url: 200,
                                      journal=False)
    assert next(c for c in report.checks if c.name == "faucet:request").status == "failed"
