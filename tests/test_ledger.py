# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

import time

import pytest

from suideploy.storage import ledger


def _new_run(mode, **kw):
    run_id = ledger.start_run(mode, **kw)
    time.sleep(0.005)  # run ids sort by millisecond
    return run_id


def test_kv_roundtrip(isolated_ledger):
    kv = isolated_ledger
    kv.put("scratch", b"a:1", b"one")
    kv.put("scratch", b"a:2", b"two")
    kv.put("scratch", b"b:1", b"other")
    assert kv.get("scratch", b"a:1") == b"one"
    assert [k for k, _ in kv.iter_prefix("scratch", b"a:")] == [b"a:1", b"a:2"]
    kv.delete("scratch", b"a:1")
    assert kv.get("scratch", b"a:1") is None
    assert kv.clear_db("scratch") == 2


def test_batch_commits_together(isolated_ledger):
    kv = isolated_ledger
    with kv.batch("scratch") as wb:
        wb.put(b"x", b"1")
        wb.put(b"y", b"2")
        wb.delete(b"x")
    assert kv.get("scratch", b"x") is None
    assert kv.get("scratch", b"y") == b"2"


def test_stage_records_keep_order(isolated_ledger):
    run_id = _new_run("genesis")
    ledger.record_stage(run_id, "genesis", "ok", duration_s=1.23456)
    ledger.record_stage(run_id, "node_config", "failed", detail="missing addresses")
    ledger.record_stage(run_id, "genesis", "ok", duration_s=0.5)
    ledger.finish_run(run_id, "failed")

    run = ledger.get_run(run_id)
    assert run["status"] == "failed" and run["finished"] is not None
    assert run["stages"] == ["genesis", "node_config"]
    records = ledger.stage_records(run_id)
    assert [r["stage"] for r in records] == ["genesis", "node_config"]
    assert records[0]["duration_s"] == 0.5
    assert ledger.stage_status(run_id, "node_config")["detail"] == "missing addresses"
    assert ledger.completed_stages(run_id) == {"genesis"}


def test_unknown_run(isolated_ledger):
    with pytest.raises(KeyError):
        ledger.record_stage("0000000000000-abcdef", "genesis", "ok")


def test_last_run_filters(isolated_ledger):
    first = _new_run("full")
    dry = _new_run("full", dry_run=True)
    other = _new_run("explorer")
    current = _new_run("full")

    assert [r["id"] for r in ledger.list_runs()] == [current, other, dry, first]
    assert [r["id"] for r in ledger.list_runs("full", limit=2)] == [current, dry]
    assert ledger.last_run("full", exclude=current)["id"] == first
    assert ledger.last_run("full", exclude=current, include_dry_run=True)["id"] == dry
    assert ledger.last_run("install") is None
