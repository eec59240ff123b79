# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(PROJECT_ROOT, "src")
for path in (PROJECT_ROOT, SRC_ROOT):
    if path not in sys.path:
        sys.path.append(path)

from suideploy.node.paths import SuiPaths  # noqa: E402
from suideploy.storage import kv  # noqa: E402
from suideploy.system.shell import CommandResult, Runner  # noqa: E402


@dataclass
class FakeCall:
    argv: Tuple[str, ...]
    cwd: Optional[str]
    input_text: Optional[str]


class FakeRunner(Runner):
    """Runner that never spawns processes.

    Responses are matched on an argv prefix, with argv[0] compared by
    basename so ``/usr/local/bin/sui`` matches ``("sui", ...)``. Anything
    unmatched succeeds with empty output.
    """

    def __init__(self, tools=(), **kwargs):
        kwargs.setdefault("sudo", False)
        super().__init__(**kwargs)
        self.tools = set(tools)
        self.responses: List[tuple] = []
        self.calls: List[FakeCall] = []

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.tools else None

    def respond(self, *prefix, returncode=0, stdout="", stderr=""):
        self.responses.append((tuple(prefix), returncode, stdout, stderr))

    @staticmethod
    def _norm(argv):
        argv = list(argv)
        if argv[:2] == ["sudo", "-E"]:
            argv = argv[2:]
        if argv:
            argv[0] = os.path.basename(argv[0])
        return tuple(argv)

    def _execute(self, argv, cwd, env, input_text, timeout):
        self.calls.append(FakeCall(tuple(argv), cwd, input_text))
        norm = self._norm(argv)
        # last registered response wins so tests can override defaults
        for prefix, rc, out, err in reversed(self.responses):
            if norm[:len(prefix)] == prefix:
                return CommandResult(argv=tuple(argv), returncode=rc, stdout=out, stderr=err)
        return CommandResult(argv=tuple(argv), returncode=0)

    def commands(self):
        return [self._norm(c.argv) for c in self.calls]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def sui_paths(tmp_path):
    return SuiPaths.from_home(tmp_path / "sui")


@pytest.fixture
def isolated_ledger(tmp_path):
    kv.use_path(str(tmp_path / "ledger"))
    yield kv
    kv.use_path(None)


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        h.close()
        root.removeHandler(h)
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)
