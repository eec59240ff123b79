# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import json
import os
import stat
from types import SimpleNamespace

import pytest

from conftest import FakeRunner
from suideploy.explorer.installer import ExplorerInstall
from suideploy.node.build import BinaryInstall
from suideploy.node.sui_cli import DRY_RUN_ADDRESS
from suideploy.ops import deploy
from suideploy.storage import ledger
from suideploy.utils import config as CFG
from suideploy.utils.errors import DeployError
from suideploy.utils.helpers import parse_env_file


def _statuses(result):
    return {r.stage: r.status for r in result.stages}


def test_unknown_mode(sui_paths):
    with pytest.raises(DeployError):
        deploy.Deployer(sui_paths, FakeRunner(), deploy.DeployOptions(mode="everything"))


def test_genesis_mode_dry_run(sui_paths, isolated_ledger):
    runner = FakeRunner(dry_run=True)
    result = deploy.Deployer(sui_paths, runner, deploy.DeployOptions(mode="genesis")).run()

    assert result.status == "ok"
    assert _statuses(result) == {"genesis": "ok", "node_config": "ok", "validator_keys": "skipped"}
    # nothing privileged or node-side was executed
    assert runner.calls == []
    assert ("write", str(sui_paths.validator_config)) in runner.history
    assert not sui_paths.validator_config.exists()
    assert not sui_paths.accounts_env.exists()
    assert not sui_paths.account_info.exists()
    assert ledger.get_run(result.run_id)["dry_run"] is True


def test_dry_run_does_not_leak_into_real_run(sui_paths, isolated_ledger):
    deploy.Deployer(sui_paths, FakeRunner(dry_run=True), deploy.DeployOptions(mode="genesis")).run()
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", returncode=1, stderr="keystore unavailable")
    result = deploy.Deployer(sui_paths, runner, deploy.DeployOptions(mode="genesis")).run()

    assert result.status == "ok"
    accounts = parse_env_file(sui_paths.accounts_env)
    assert DRY_RUN_ADDRESS not in accounts.values()
    assert sui_paths.genesis_key_file.read_text().startswith("suiprivkey1")


def test_resume_skips_completed_stages(sui_paths, isolated_ledger):
    opts = deploy.DeployOptions(mode="genesis")
    first = deploy.Deployer(sui_paths, FakeRunner(dry_run=True), opts).run()
    resumed = deploy.Deployer(sui_paths, FakeRunner(dry_run=True),
                              deploy.DeployOptions(mode="genesis", resume=True)).run()

    assert resumed.run_id != first.run_id
    assert _statuses(resumed) == {"genesis": "resumed", "node_config": "resumed", "validator_keys": "skipped"}
    assert ledger.completed_stages(resumed.run_id) == {"genesis", "node_config"}


def test_genesis_mode_writes_real_files(sui_paths, isolated_ledger):
    runner = FakeRunner()
    runner.respond("sui", "client", "new-address", returncode=1, stderr="keystore unavailable")
    result = deploy.Deployer(sui_paths, runner, deploy.DeployOptions(mode="genesis", variant="isolated")).run()

    assert result.status == "ok"
    info = parse_env_file(sui_paths.account_info)
    assert info["VALIDATOR_ADDRESS"] == info["GENESIS_ACCOUNT_ADDRESS"]
    assert "127.0.0.1:9002" in sui_paths.validator_config.read_text()
    assert sui_paths.genesis_key_file.read_text().startswith("suiprivkey1")
    assert sui_paths.network_key.exists()


@pytest.fixture
def install_stubs(monkeypatch):
    calls = {"binaries": 0}
    report = SimpleNamespace(status="ok", warnings=[], os_name="Ubuntu 22.04", memory_gb=16.0, disk_free_gb=200.0)
    monkeypatch.setattr(deploy, "check_requirements", lambda strict=True: report)
    monkeypatch.setattr(deploy, "install_dependencies", lambda runner: "apt")

    def flaky_binaries(runner, home, prefer_release=True, require_payout_patch=None):
        calls["binaries"] += 1
        if calls["binaries"] == 1:
            raise DeployError("cargo build failed")
        return BinaryInstall(method="source", binaries=("sui", "sui-node", "sui-faucet"), payout_status="ok")

    monkeypatch.setattr(deploy, "ensure_binaries", flaky_binaries)
    return calls


def test_required_stage_failure_stops_then_resumes(sui_paths, isolated_ledger, install_stubs):
    with pytest.raises(DeployError, match="cargo build failed"):
        deploy.Deployer(sui_paths, FakeRunner(), deploy.DeployOptions(mode="install")).run()
    failed = ledger.list_runs("install")[0]
    assert failed["status"] == "failed"
    assert ledger.completed_stages(failed["id"]) == {"requirements", "dependencies"}

    result = deploy.Deployer(sui_paths, FakeRunner(), deploy.DeployOptions(mode="install", resume=True)).run()
    assert _statuses(result) == {"requirements": "resumed", "dependencies": "resumed", "binaries": "ok"}
    assert install_stubs["binaries"] == 2


def test_unexpected_error_closes_the_run(sui_paths, isolated_ledger, monkeypatch):
    def broken(strict=True):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(deploy, "check_requirements", broken)
    with pytest.raises(OSError):
        deploy.Deployer(sui_paths, FakeRunner(), deploy.DeployOptions(mode="install")).run()
    run = ledger.list_runs("install")[0]
    assert run["status"] == "failed"
    rec = ledger.stage_status(run["id"], "requirements")
    assert rec["status"] == "failed"
    assert rec["detail"].startswith("OSError")


def test_optional_stage_failure_degrades_run(sui_paths, isolated_ledger, monkeypatch, tmp_path):
    monkeypatch.setattr(CFG, "NGINX_AVAILABLE", str(tmp_path / "sites-available"))
    monkeypatch.setattr(CFG, "NGINX_ENABLED", str(tmp_path / "sites-enabled"))
    monkeypatch.setattr(deploy, "choose_explorer_port", lambda runner=None, free_conflicts=False: 3011)
    app_dir = str(sui_paths.explorer_dir / "sui-explorer" / "apps" / "explorer")
    monkeypatch.setattr(deploy, "install_explorer", lambda runner, paths, port, prefer: ExplorerInstall(
        kind="official", app_dir=app_dir, package_manager="pnpm", port=port))

    runner = FakeRunner(tools=["nginx"])
    runner.respond("nginx", "-t", returncode=1, stderr="duplicate listen options")
    result = deploy.Deployer(sui_paths, runner, deploy.DeployOptions(mode="explorer", domain="explorer.test", user="sui")).run()

    assert result.status == "warn"
    assert _statuses(result) == {"explorer": "ok", "systemd": "ok", "start": "ok", "nginx": "failed"}
    assert ("systemctl", "start", "sui-explorer") in runner.commands()
    assert ("systemctl", "start", "sui-fullnode") not in runner.commands()
    unit = next(c for c in runner.calls if c.argv[:2] == ("tee", os.path.join(CFG.SYSTEMD_UNIT_DIR, "sui-explorer.service")))
    assert "Environment=PORT=3011" in unit.input_text
    state = json.loads((sui_paths.explorer_dir / "install.json").read_text())
    assert state["port"] == 3011


def test_systemd_without_explorer_state(sui_paths, isolated_ledger):
    deployer = deploy.Deployer(sui_paths, FakeRunner(), deploy.DeployOptions(mode="full", user="sui"))
    status, detail = deployer.stage_systemd()
    assert status == "ok"
    assert detail == "sui-fullnode, sui-validator, sui-faucet"


def test_helper_scripts(sui_paths):
    written = deploy.write_helper_scripts(sui_paths, FakeRunner())
    assert written == [str(sui_paths.start_script), str(sui_paths.stop_script), str(sui_paths.status_script)]
    stop = sui_paths.stop_script.read_text().splitlines()
    stops = [line.split()[-1] for line in stop if "systemctl stop" in line]
    assert stops == ["sui-explorer", "sui-faucet", "sui-validator", "sui-fullnode"]
    assert stat.S_IMODE(os.stat(sui_paths.start_script).st_mode) == 0o755
    assert "sui_getChainIdentifier" in sui_paths.status_script.read_text()


@pytest.mark.parametrize("payout,expected", [("ok", "ok"), (None, "ok"), ("warn", "warn"), ("failed", "warn")])
def test_binaries_stage_reflects_payout_check(sui_paths, monkeypatch, payout, expected):
    seen = {}

    def fake_binaries(runner, home, prefer_release=True, require_payout_patch=None):
        seen["require"] = require_payout_patch
        return BinaryInstall(method="source", binaries=("sui",), payout_status=payout)

    monkeypatch.setattr(deploy, "ensure_binaries", fake_binaries)
    opts = deploy.DeployOptions(mode="install", require_payout_patch=True)
    status, _ = deploy.Deployer(sui_paths, FakeRunner(), opts).stage_binaries()
    assert status == expected
    assert seen["require"] is True
