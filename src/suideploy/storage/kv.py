# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE
import os, lmdb
from contextlib import contextmanager
from typing import Iterator, Tuple, Optional

from ..utils import config as CFG


def kv_enabled() -> bool:
    return CFG.KV_BACKEND == "lmdb"


_env = None
_db_handles = {}
_path: Optional[str] = None


def db_path() -> str:
    return _path or CFG.LEDGER_DIR


def use_path(path: Optional[str]) -> None:
    """Point the store at another directory; ``None`` goes back to LEDGER_DIR."""
    global _path
    close()
    _path = str(path) if path is not None else None


def close() -> None:
    global _env
    if _env is not None:
        _env.close()
    _env = None
    _db_handles.clear()


def _ensure_env():
    global _env
    if _env is not None:
        return _env
    if not kv_enabled():
        return None
    os.makedirs(db_path(), exist_ok=True)
    _env = lmdb.open(db_path(), map_size=int(CFG.LMDB_MAP_SIZE_INIT), max_dbs=8, create=True, lock=True, subdir=True)
    return _env


def _grow_env_map(min_target: int | None = None) -> int:
    env = _ensure_env()
    if env is None:
        return 0
    cur = int(env.info().get("map_size", 0) or 0)
    new = max(cur * 2, cur + (cur // 2))
    if min_target and min_target > new:
        new = min_target
    new = min(new, int(CFG.LMDB_MAP_SIZE_MAX))
    if new <= cur:
        raise lmdb.MapFullError("ledger map size at LMDB_MAP_SIZE_MAX")
    env.set_mapsize(new)
    return new


def _get_db(name: str):
    env = _ensure_env()
    if env is None:
        return None
    db = _db_handles.get(name)
    if db is None:
        db = env.open_db(name.encode("utf-8"), create=True)
        _db_handles[name] = db
    return db


def get(name: str, key: bytes) -> Optional[bytes]:
    env = _ensure_env(); db = _get_db(name)
    if env is None or db is None:
        return None
    with env.begin(db=db, write=False) as txn:
        return txn.get(key)


def _write(name: str, op) -> None:
    env = _ensure_env(); db = _get_db(name)
    if env is None or db is None:
        raise RuntimeError("KV not enabled")
    try:
        with env.begin(db=db, write=True) as txn:
            op(txn)
    except lmdb.MapFullError:
        _grow_env_map()
        with env.begin(db=db, write=True) as txn:
            op(txn)


def put(name: str, key: bytes, val: bytes) -> None:
    _write(name, lambda txn: txn.put(key, val))


def delete(name: str, key: bytes) -> None:
    _write(name, lambda txn: txn.delete(key))


def clear_db(name: str) -> int:
    env = _ensure_env(); db = _get_db(name)
    if env is None or db is None:
        return 0
    with env.begin(db=db, write=True) as txn:
        entries = int(txn.stat(db).get("entries", 0) or 0)
        txn.drop(db, delete=False)
    return entries


def iter_prefix(name: str, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
    env = _ensure_env(); db = _get_db(name)
    if env is None or db is None:
        return iter(())
    def _iter():
        with env.begin(db=db, write=False) as txn:
            with txn.cursor() as cur:
                if not cur.set_range(prefix):
                    return
                while True:
                    k = cur.key()
                    if not k or not k.startswith(prefix):
                        break
                    yield k, cur.value()
                    if not cur.next():
                        break
    return _iter()


class WriteBatch:
    """Buffered writes committed in one transaction; retried once after a map grow."""

    def __init__(self, env, db):
        self.env = env; self.db = db
        self.ops: list = []

    def put(self, key: bytes, val: bytes) -> None:
        self.ops.append(("put", key, val))

    def delete(self, key: bytes) -> None:
        self.ops.append(("delete", key, None))

    def _apply(self) -> None:
        with self.env.begin(db=self.db, write=True) as txn:
            for op, key, val in self.ops:
                if op == "put":
                    txn.put(key, val)
                else:
                    txn.delete(key)

    def commit(self) -> None:
        if not self.ops:
            return
        try:
            self._apply()
        except lmdb.MapFullError:
            _grow_env_map()
            self._apply()
        self.ops = []


@contextmanager
def batch(name: str):
    env = _ensure_env(); db = _get_db(name)
    if env is None or db is None:
        raise RuntimeError("KV not enabled")
    wb = WriteBatch(env, db)
    yield wb
    wb.commit()
