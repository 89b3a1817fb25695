"""Session identity.

A session key names one logical terminal target: `host:session:window.pane`
inside tmux, `host:<cwd>` otherwise. Restarting the wrapped program in the
same pane yields the same key, so it lands back in the same room.
"""
from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..runners import tmux
from .git import git_root


def hostname() -> str:
    return socket.gethostname()


def session_key(cwd: Optional[str] = None, *, pane: Optional[str] = None, host: Optional[str] = None) -> str:
    h = host or hostname()
    p = pane if pane is not None else tmux.current_pane()
    if p:
        return f"{h}:{p}"
    return f"{h}:{cwd or os.getcwd()}"


def tmux_target(key: Optional[str]) -> Optional[str]:
    """`host:sess:win.pane` -> `sess:win.pane`; None for directory-fallback keys.

    Directory keys carry an absolute path after the host; pane keys carry
    `session:window.pane`.
    """
    if not key or ":" not in key:
        return None
    _, rest = key.split(":", 1)
    if not rest or rest.startswith("/") or rest.startswith("~"):
        return None
    if ":" not in rest:
        return None
    locator = rest.rsplit(":", 1)[1]
    if "." not in locator:
        return None
    return rest


@dataclass
class SessionContext:
    """Per-run session state threaded through the outbound path.

    `current_room` replaces a process-global pointer: each context tracks the
    room its own notifications went to, which is also where typing updates go.
    """

    session_key: str
    hostname: str = ""
    tmux_pane: Optional[str] = None
    cwd: str = ""
    git_root: Optional[str] = None
    current_room: Optional[str] = None

    def context_lines(self) -> list[str]:
        lines = []
        if self.hostname:
            lines.append(f"Host: `{self.hostname}`")
        if self.tmux_pane:
            lines.append(f"Tmux: `{self.tmux_pane}`")
        if self.cwd:
            lines.append(f"Dir: `{self.cwd}`")
        if self.git_root:
            lines.append(f"Git: `{self.git_root}`")
        return lines


def detect_context(cwd: Optional[str] = None) -> SessionContext:
    directory = cwd or os.getcwd()
    host = hostname()
    pane = tmux.current_pane()
    root = git_root(Path(directory))
    return SessionContext(
        session_key=session_key(directory, pane=pane or "", host=host),
        hostname=host,
        tmux_pane=pane,
        cwd=directory,
        git_root=str(root) if root else None,
    )
