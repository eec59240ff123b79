# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from types import SimpleNamespace

import pytest

from conftest import FakeRunner
from suideploy.node import build
from suideploy.system import firewall, packages, ports, requirements
from suideploy.system.shell import CommandResult
from suideploy.utils import config as CFG
from suideploy.utils.errors import DeployError, RequirementError

GIB = 1024 ** 3


def test_ufw_opens_every_port():
    runner = FakeRunner(tools=["ufw", "firewall-cmd"])
    assert firewall.open_ports(runner, [8080, 9000]) == "ufw"
    assert runner.commands() == [("ufw", "allow", "8080/tcp"), ("ufw", "allow", "9000/tcp"),
                                 ("ufw", "--force", "enable")]


def test_firewalld_reloads():
    runner = FakeRunner(tools=["firewall-cmd"])
    assert firewall.open_ports(runner, [5003]) == "firewalld"
    assert runner.commands()[-1] == ("firewall-cmd", "--reload")


def test_no_firewall():
    runner = FakeRunner()
    assert firewall.open_ports(runner) is None
    assert runner.calls == []


def test_apt_install_is_noninteractive():
    runner = FakeRunner(tools=["apt-get", "node", "npm"])
    assert packages.install_system_packages(runner) == "apt-get"
    cmds = runner.commands()
    assert cmds[0] == ("apt-get", "update")
    assert cmds[1][:3] == ("apt-get", "install", "-y")
    assert "protobuf-compiler" in cmds[1]


def test_no_package_manager():
    with pytest.raises(RequirementError):
        packages.install_system_packages(FakeRunner())


def test_node_from_distro_on_non_apt_hosts():
    runner = FakeRunner(tools=["dnf"])
    packages.install_node(runner)
    cmds = runner.commands()
    assert cmds[0] == ("dnf", "install", "-y", "nodejs", "npm")
    assert not any(c.argv[:2] == ("bash", "-c") for c in runner.calls)
    assert cmds[-1] == ("npm", "install", "-g", *CFG.NODE_GLOBAL_TOOLS)


def test_present_tools_are_not_reinstalled():
    runner = FakeRunner(tools=["apt-get", "cargo", "node", "npm", "yarn", "pnpm", "tsc",
                               *packages.BASE_TOOLS])
    assert packages.install_system_packages(runner) == "apt-get"
    packages.install_rust(runner)
    packages.install_node(runner, "apt-get")
    cmds = runner.commands()
    assert not any(c[0] in ("apt-get", "npm") for c in cmds)
    assert ("rustup", "update") not in cmds
    assert not any(c.argv[:2] == ("bash", "-c") for c in runner.calls)


def test_only_missing_npm_tools_are_installed():
    runner = FakeRunner(tools=["node", "npm", "yarn"])
    packages.install_node(runner)
    assert runner.commands() == [("npm", "install", "-g", "pnpm", "typescript")]



def test_requirements_warn_on_small_host(monkeypatch):
    monkeypatch.setattr(requirements.platform, "system", lambda: "Linux")
    monkeypatch.setattr(requirements.psutil, "virtual_memory", lambda: SimpleNamespace(total=4 * GIB))
    monkeypatch.setattr(requirements.psutil, "disk_usage", lambda path: SimpleNamespace(free=500 * GIB))
    report = requirements.check_requirements()
    assert report.status == "warn"
    assert report.memory_gb == 4
    assert len(report.warnings) == 1


def test_unsupported_os(monkeypatch):
    monkeypatch.setattr(requirements.platform, "system", lambda: "Windows")
    with pytest.raises(RequirementError):
        requirements.check_requirements()
    monkeypatch.setattr(requirements.psutil, "virtual_memory", lambda: SimpleNamespace(total=64 * GIB))
    monkeypatch.setattr(requirements.psutil, "disk_usage", lambda path: SimpleNamespace(free=500 * GIB))
    assert requirements.check_requirements(strict=False).status == "failed"


def test_dry_run_free_port_records_owner(monkeypatch):
    monkeypatch.setattr(ports, "port_owners", lambda port, runner=None: {4242})
    runner = FakeRunner(dry_run=True)
    assert ports.free_port(3000, runner) == [4242]
    assert runner.history == [("free_port", 3000, (4242,))]


def test_fix_port_conflicts_skips_free_ports(monkeypatch):
    monkeypatch.setattr(ports, "is_port_free", lambda port: port != 9000)
    monkeypatch.setattr(ports, "port_owners", lambda port, runner=None: {77})
    report = ports.fix_port_conflicts(FakeRunner(dry_run=True), [9000, 9001])
    assert report.freed == {9000: [77]}
    assert report.still_busy == []


def test_sync_source_stashes_local_changes(tmp_path):
    repo = tmp_path / "sui"
    (repo / ".git").mkdir(parents=True)

    class PullOnce(FakeRunner):
        failures = 1

        def _execute(self, argv, cwd, env, input_text, timeout):
            res = super()._execute(argv, cwd, env, input_text, timeout)
            if self._norm(argv)[:2] == ("git", "pull") and self.failures:
                self.failures -= 1
                return CommandResult(argv=tuple(argv), returncode=1, stderr="local changes would be overwritten")
            return res

    runner = PullOnce()
    assert build.sync_source(runner, repo) == repo
    git = [c[1] for c in runner.commands() if c[0] == "git"]
    assert git == ["pull", "stash", "pull", "stash"]
    assert runner.commands()[-1] == ("git", "stash", "pop")
    assert all(c.cwd == str(repo) for c in runner.calls)


def test_missing_payout_patch_blocks_when_required(tmp_path):
    runner = FakeRunner()
    with pytest.raises(DeployError):
        build.build_binaries(runner, tmp_path, require_payout_patch=True)
    assert runner.calls == []

    assert build.build_binaries(runner, tmp_path, require_payout_patch=False) == "failed"
    assert runner.commands()[0][:3] == ("cargo", "build", "--release")


def test_payout_requirement_follows_config(tmp_path, monkeypatch):
    monkeypatch.setattr(CFG, "REQUIRE_PAYOUT_PATCH", True)
    runner = FakeRunner()
    with pytest.raises(DeployError, match="payout"):
        build.build_binaries(runner, tmp_path)
    assert runner.calls == []


def test_ensure_binaries_from_source_dry_run(tmp_path):
    runner = FakeRunner(dry_run=True)
    res = build.ensure_binaries(runner, tmp_path, prefer_release=False)
    assert res.method == "source"
    assert ("git", "clone", "--branch", CFG.SUI_BRANCH, CFG.SUI_REPO_URL, str(tmp_path / "sui")) in runner.history
    installs = [h for h in runner.history if h[0] == "install"]
    assert len(installs) == 3
