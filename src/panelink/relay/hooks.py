"""Hook settings injected into the wrapped CLI so its hooks ping the relay."""
from __future__ import annotations

import json
import shlex
import sys
from typing import Any, Dict, List, Optional

from .client import SOCKET_ENV

# (event name, matcher) pairs; None means every occurrence.
HOOKED_EVENTS: List[tuple] = [
    ("SessionStart", None),
    ("PreToolUse", "AskUserQuestion"),
    ("PermissionRequest", None),
    ("Stop", None),
    ("Notification", None),
]


def hook_command(socket_path: str, *, python: Optional[str] = None) -> str:
    exe = python or sys.executable or "python3"
    return f"{SOCKET_ENV}={shlex.quote(socket_path)} {shlex.quote(exe)} -m panelink.relay.client"


def build_hook_settings(socket_path: str, *, timeout_s: int = 10, python: Optional[str] = None) -> Dict[str, Any]:
    cmd = hook_command(socket_path, python=python)
    hooks: Dict[str, Any] = {}
    for event, matcher in HOOKED_EVENTS:
        entry: Dict[str, Any] = {"hooks": [{"type": "command", "command": cmd, "timeout": int(timeout_s)}]}
        if matcher:
            entry = {"matcher": matcher, **entry}
        hooks[event] = [entry]
    return {"hooks": hooks}


def hook_settings_json(socket_path: str, *, timeout_s: int = 10) -> str:
    return json.dumps(build_hook_settings(socket_path, timeout_s=timeout_s), separators=(",", ":"))
