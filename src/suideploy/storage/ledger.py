# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Deployment ledger.

Every ``suideploy deploy`` run gets a record in the ``runs`` DB and one
record per stage in ``stages``. Keys sort by creation time, so the last
entry for a mode is the most recent run. ``completed_stages`` is what
``--resume`` uses to skip work that already succeeded.
"""

from __future__ import annotations

import json, time
from typing import Any, Dict, List, Optional, Set

from . import kv
from ..utils.helpers import random_hex

RUNS_DB = "runs"
STAGES_DB = "stages"

DONE_STATUSES = ("ok", "resumed")


def _dump(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _load(raw: Optional[bytes]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    return json.loads(raw.decode("utf-8"))


def _run_key(run_id: str) -> bytes:
    return f"run:{run_id}".encode("utf-8")


def _stage_key(run_id: str, stage: str) -> bytes:
    return f"stage:{run_id}:{stage}".encode("utf-8")


def start_run(mode: str, dry_run: bool = False, resumed_from: Optional[str] = None) -> str:
    run_id = f"{int(time.time() * 1000):013d}-{random_hex(3)}"
    kv.put(RUNS_DB, _run_key(run_id), _dump({
        "id": run_id,
        "mode": mode,
        "dry_run": bool(dry_run),
        "status": "running",
        "started": int(time.time()),
        "finished": None,
        "resumed_from": resumed_from,
        "stages": [],
    }))
    return run_id


def get_run(run_id: str) -> Optional[Dict[str, Any]]:
    return _load(kv.get(RUNS_DB, _run_key(run_id)))


def record_stage(run_id: str, stage: str, status: str, detail: str = "", duration_s: float = 0.0) -> None:
    run = get_run(run_id)
    if run is None:
        raise KeyError(f"unknown run {run_id}")
    entry = {
        "stage": stage,
        "status": status,
        "detail": detail,
        "duration_s": round(float(duration_s), 3),
        "at": int(time.time()),
    }
    if stage not in run["stages"]:
        run["stages"].append(stage)
    with kv.batch(STAGES_DB) as wb:
        wb.put(_stage_key(run_id, stage), _dump(entry))
    kv.put(RUNS_DB, _run_key(run_id), _dump(run))


def finish_run(run_id: str, status: str) -> None:
    run = get_run(run_id)
    if run is None:
        raise KeyError(f"unknown run {run_id}")
    run["status"] = status
    run["finished"] = int(time.time())
    kv.put(RUNS_DB, _run_key(run_id), _dump(run))


def stage_status(run_id: str, stage: str) -> Optional[Dict[str, Any]]:
    return _load(kv.get(STAGES_DB, _stage_key(run_id, stage)))


def stage_records(run_id: str) -> List[Dict[str, Any]]:
    prefix = f"stage:{run_id}:".encode("utf-8")
    records = [json.loads(v.decode("utf-8")) for _k, v in kv.iter_prefix(STAGES_DB, prefix)]
    run = get_run(run_id)
    order = {name: i for i, name in enumerate(run["stages"])} if run else {}
    return sorted(records, key=lambda r: order.get(r["stage"], len(order)))


def list_runs(mode: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Newest first."""
    runs = [json.loads(v.decode("utf-8")) for _k, v in kv.iter_prefix(RUNS_DB, b"run:")]
    if mode:
        runs = [r for r in runs if r.get("mode") == mode]
    runs.reverse()
    return runs[:limit] if limit else runs


def last_run(mode: Optional[str] = None, exclude: Optional[str] = None,
             include_dry_run: bool = False) -> Optional[Dict[str, Any]]:
    for run in list_runs(mode):
        if run["id"] == exclude:
            continue
        if run.get("dry_run") and not include_dry_run:
            continue
        return run
    return None


def completed_stages(run_id: str) -> Set[str]:
    return {r["stage"] for r in stage_records(run_id) if r.get("status") in DONE_STATUSES}
