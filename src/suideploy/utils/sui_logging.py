# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE
'''
HOW TO USE logging in your code:

log = get_ctx_logger("suideploy.node.genesis")
log.trace("very technical details, like : full command lines, rendered files")
log.info("normal event / milestone")
log.debug("technical details for diagnosis")
log.warning("a non-fatal condition that needs attention, usually a fallback kicking in")
log.error("handled error")
log.critical("fatal condition")
log.exception("context message when an exception occurs") >automatically include traceback

Context fields (stage / service / host) can be bound per logger:

log = get_ctx_logger("suideploy.ops.deploy", stage="genesis")
'''

from __future__ import annotations

import os, logging, re, json, time, hashlib, platform, zipfile
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from suideploy.utils import config as CFG

# ===== TRACE level (below DEBUG) =====
TRACE = 9
logging.addLevelName(TRACE, "TRACE")
def _trace(self, msg, *a, **k):
    if self.isEnabledFor(TRACE):
        self._log(TRACE, msg, a, **k)
logging.Logger.trace = _trace

CTX_FIELDS = tuple(CFG.LOG_CTX_FIELDS)


# =========================
# 0) Defaults & helpers
# =========================

_DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s [%(stage)s]: %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


# =========================
# 1) Filters & formatters
# =========================

class RedactFilter(logging.Filter):
    """Mask key material before a record reaches any handler."""

    RE_SEED    = re.compile(r"\b([a-z]{3,}\s){11,23}[a-z]{3,}\b", re.I)
    RE_SUIPRIV = re.compile(r"\bsuiprivkey1[02-9ac-hj-np-z]{20,}\b", re.I)
    RE_HEXKEY  = re.compile(r"((?:priv(?:ate)?_?key|secret|key)\s*[=:]\s*)(?:0x)?[0-9a-f]{64}\b", re.I)

    def filter(self, record):
        msg = record.getMessage()
        msg = self.RE_SEED.sub("[REDACTED_MNEMONIC]", msg)
        msg = self.RE_SUIPRIV.sub("[REDACTED_SUIPRIVKEY]", msg)
        msg = self.RE_HEXKEY.sub(r"\1[REDACTED_KEY]", msg)
        record.msg, record.args = msg, None
        return True


class RateLimitFilter(logging.Filter):
    def __init__(self, min_interval: float = 2.0):
        super().__init__()
        self.min_interval = float(min_interval)
        self._last: dict[str, float] = {}

    def filter(self, record):
        base = f"{record.name}|{record.levelno}|{record.msg}"
        key = hashlib.blake2b(base.encode(), digest_size=8).hexdigest()
        now = time.monotonic()
        last = self._last.get(key, 0.0)
        if (now - last) < self.min_interval:
            return False
        self._last[key] = now
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record):
        d = {
            "ts": self.formatTime(record, _DEFAULT_DATEFMT),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in CTX_FIELDS:
            v = getattr(record, k, None)
            if v not in (None, "-"):
                d[k] = v
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False)


class SafeFormatter(logging.Formatter):
    def format(self, record):
        for k in CTX_FIELDS:
            if not hasattr(record, k):
                setattr(record, k, "-")
        return super().format(record)


class ContextAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        for k in CTX_FIELDS:
            extra.setdefault(k, (self.extra or {}).get(k, "-"))
        return msg, kwargs

    def isEnabledFor(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def trace(self, msg, *args, **kwargs):
        if self.logger.isEnabledFor(TRACE):
            self.log(TRACE, msg, *args, **kwargs)

    def bind(self, **ctx) -> "ContextAdapter":
        merged = dict(self.extra or {})
        merged.update(ctx)
        return ContextAdapter(self.logger, merged)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = "suideploy" if not name else name
    return logging.getLogger(base)


def get_ctx_logger(name: str = "suideploy", **ctx) -> ContextAdapter:
    return ContextAdapter(get_logger(name), ctx)


# =========================
# 2) Core logging setup
# =========================

def setup_logging(
    log_file: str | os.PathLike | None = None,
    level: int | str | None = None,
    to_console: bool | None = None,
    rotate_max_bytes: int | None = None,
    backup_count: int | None = None,
    force: bool = False,
    as_json: bool | None = None,
    fmt: str = _DEFAULT_FMT,
    datefmt: str = _DEFAULT_DATEFMT,) -> logging.Logger:

    if level is None:
        level = CFG.LOG_LEVEL
    if log_file is None:
        log_file = CFG.LOG_PATH

    # Get preference from CFG when argument is None
    if to_console is None:
        to_console = bool(getattr(CFG, "LOG_TO_CONSOLE", False))
    if rotate_max_bytes is None:
        rotate_max_bytes = int(getattr(CFG, "LOG_ROTATE_MAX_BYTES", 5_000_000))
    if backup_count is None:
        backup_count = int(getattr(CFG, "LOG_BACKUP_COUNT", 3))
    if as_json is None:
        as_json = str(CFG.LOG_FORMAT).lower() == "json"

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = []
    rate_seconds_console = float(getattr(CFG, "LOG_RATE_LIMIT_SECONDS", 0.0))
    rate_seconds_file    = float(getattr(CFG, "LOG_FILE_RATE_LIMIT_SECONDS", 0.0))

    # --- File handler ---
    fh = RotatingFileHandler(
        log_path, maxBytes=int(rotate_max_bytes), backupCount=int(backup_count),
        encoding="utf-8", delay=True
    )
    fh.setFormatter(JsonFormatter() if as_json else SafeFormatter(fmt, datefmt))
    fh.addFilter(RedactFilter())
    if rate_seconds_file > 0.0:
        fh.addFilter(RateLimitFilter(rate_seconds_file))
    handlers.append(fh)

    # --- Console handler (optional) ---
    if to_console:
        sh = logging.StreamHandler()
        sh.setFormatter(JsonFormatter() if as_json else SafeFormatter(fmt, datefmt))
        sh.addFilter(RedactFilter())
        if rate_seconds_console > 0.0:
            sh.addFilter(RateLimitFilter(rate_seconds_console))
        handlers.append(sh)

    lvl = _resolve_level(level)
    logging.basicConfig(level=lvl, handlers=handlers, force=force)

    logging.getLogger("suideploy").trace(
        "Logging configured: level=%s file=%s format=%s console=%s rotate=%s backup=%s",
        logging.getLevelName(lvl), str(log_path), ("json" if as_json else "plain"),
        to_console, rotate_max_bytes, backup_count
    )
    return logging.getLogger("suideploy")


# =========================
# 3) Support bundle
# =========================

def export_log_bundle(path: str = "suideploy_logs_bundle.zip") -> Path:
    """Zip every active log file (plus rotations) with a short host summary."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    files_abs: dict[Path, Path] = {}
    def _add(p: Path):
        if p.exists():
            files_abs.setdefault(p.resolve(), p)

    for h in list(logging.getLogger().handlers):
        if isinstance(h, RotatingFileHandler):
            h.flush()
            p = Path(h.baseFilename)
            _add(p)
            for bp in p.parent.glob(p.name + ".*"):
                if bp.is_file():
                    _add(bp)

    base = Path(CFG.LOG_PATH)
    _add(base)
    if base.parent.exists():
        for bp in base.parent.glob(base.name + ".*"):
            if bp.is_file():
                _add(bp)

    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as z:
        z.writestr("log_info.txt", "\n".join([
            f"Python Version : {platform.python_version()}",
            f"Operation System : {platform.platform()}",
            f"Mode : {CFG.MODE}",
            f"Sui Home : {CFG.SUI_HOME}",
            f"Log Level : {CFG.LOG_LEVEL}",
            f"Log Format : {CFG.LOG_FORMAT}",
        ]))
        for rp, p in sorted(files_abs.items(), key=lambda kv: (kv[1].stem, kv[1].suffix)):
            z.write(rp, p.name)
    return out.resolve()
