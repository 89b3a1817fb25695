from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from .conv import coerce_bool


_CONFIGURED: Dict[str, bool] = {}

# Correlation keys lifted from `logger.*(..., extra={...})` into the JSON line.
_CORRELATION_KEYS = ("session_key", "room_id", "event_id", "target", "hook_event", "socket_path")


def _utc_ts_iso(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (OverflowError, OSError, ValueError):
        return ""


class JsonlFormatter(logging.Formatter):
    """One JSON object per line.

    Keep fields stable and small; extra fields can be added via `logger.*(..., extra={...})`.
    """

    def __init__(self, *, component: str):
        super().__init__()
        self._component = str(component or "").strip() or "panelink"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_ts_iso(getattr(record, "created", 0.0) or 0.0),
            "level": str(getattr(record, "levelname", "") or ""),
            "logger": str(getattr(record, "name", "") or ""),
            "component": self._component,
            "msg": record.getMessage(),
        }

        for k in _CORRELATION_KEYS:
            v = getattr(record, k, None)
            if v is None:
                continue
            sv = str(v).strip()
            if sv:
                payload[k] = sv

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        try:
            return json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError):
            # Never crash logging.
            return '{"component":"%s","level":"%s","msg":"(log serialization failed)"}' % (
                self._component,
                payload.get("level", "INFO"),
            )


def _parse_level(level: str, default: int = logging.INFO) -> int:
    s = str(level or "").strip().upper()
    if not s:
        return default
    value = getattr(logging, s, default)
    return value if isinstance(value, int) else default


def debug_enabled() -> bool:
    return coerce_bool(os.environ.get("PANELINK_DEBUG"), default=False)


def setup_logging(
    *,
    component: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """Configure the `panelink` logger tree once per process.

    - JSONL to `<log_dir>/<component>.log` when a directory is given.
    - JSONL to stderr (or `stream`) only when PANELINK_DEBUG is on: the
      coordinator shares its terminal with the wrapped program.
    - `force=True` clears existing handlers.
    """
    key = f"panelink:{component}"
    if _CONFIGURED.get(key) and not force:
        return
    _CONFIGURED[key] = True

    debug = debug_enabled()
    lvl = logging.DEBUG if debug else _parse_level(level)

    root = logging.getLogger("panelink")
    root.setLevel(lvl)
    root.propagate = False

    if force:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()

    fmt = JsonlFormatter(component=component)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_dir / f"{component}.log", encoding="utf-8")
            fh.setLevel(lvl)
            fh.setFormatter(fmt)
            root.addHandler(fh)
        except OSError:
            # An unwritable log dir must not stop the bridge.
            pass

    if debug or stream is not None:
        sh = logging.StreamHandler(stream or sys.stderr)
        sh.setLevel(lvl)
        sh.setFormatter(fmt)
        root.addHandler(sh)

    if not root.handlers:
        root.addHandler(logging.NullHandler())
