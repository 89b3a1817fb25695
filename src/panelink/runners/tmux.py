from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
import uuid
from typing import List, Optional, Tuple

logger = logging.getLogger("panelink.tmux")

_PANE_FORMAT = "#{session_name}:#{window_index}.#{pane_index}"


def _run_tmux(args: List[str], *, timeout_s: float = 3.0) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(
            ["tmux", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
            check=False,
        )
        return int(p.returncode), (p.stdout or ""), (p.stderr or "")
    except subprocess.TimeoutExpired:
        return 124, "", "tmux timeout"
    except OSError as e:
        return 1, "", str(e)


def current_pane() -> Optional[str]:
    """Return `session:window.pane` for the pane this process runs in, or None outside tmux."""
    if not os.environ.get("TMUX"):
        return None
    args = ["display-message", "-p"]
    pane_id = os.environ.get("TMUX_PANE", "").strip()
    if pane_id:
        # Without -t tmux answers for the client's active pane, not necessarily ours.
        args += ["-t", pane_id]
    code, out, _ = _run_tmux(args + [_PANE_FORMAT])
    if code != 0:
        return None
    return out.strip() or None


def _leave_copy_mode(target: str) -> None:
    code, out, _ = _run_tmux(["display-message", "-p", "-t", target, "#{pane_in_mode}"])
    if code == 0 and out.strip() in ("1", "on", "yes", "true"):
        _run_tmux(["send-keys", "-t", target, "-X", "cancel"])


def _paste_text(target: str, text: str) -> bool:
    with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8") as f:
        f.write(text)
        fname = f.name
    buf = f"panelink-{uuid.uuid4().hex[:8]}"
    try:
        code, _, err = _run_tmux(["load-buffer", "-b", buf, fname])
        if code != 0:
            logger.warning("tmux load-buffer failed: %s", err.strip(), extra={"target": target})
            return False
        code, _, err = _run_tmux(["paste-buffer", "-p", "-d", "-t", target, "-b", buf])
        if code != 0:
            logger.warning("tmux paste-buffer failed: %s", err.strip(), extra={"target": target})
            _run_tmux(["delete-buffer", "-b", buf])
            return False
        return True
    finally:
        try:
            os.unlink(fname)
        except OSError:
            pass


def _literal_arg(text: str) -> str:
    # tmux reads a trailing ";" on an argument as a command separator.
    if text.endswith(";"):
        return text[:-1] + "\\;"
    return text


def write(target: str, text: str) -> bool:
    """Type `text` into the pane and press Enter.

    Arguments go to tmux as an argv vector (no shell), so quotes, `$` and
    backticks arrive literally. Multi-line text goes through a paste buffer with
    bracketed paste so embedded newlines do not submit early.
    """
    body = (text or "").replace("\r\n", "\n").rstrip("\n")
    if not target or not body:
        return False

    _leave_copy_mode(target)

    if "\n" in body:
        if not _paste_text(target, body):
            return False
        time.sleep(0.15)
    else:
        code, _, err = _run_tmux(["send-keys", "-t", target, "-l", "--", _literal_arg(body)])
        if code != 0:
            logger.warning("tmux send-keys failed: %s", err.strip(), extra={"target": target})
            return False

    # C-m is the raw Enter keycode; some TUIs ignore the named "Enter" key in literal sessions.
    code, _, err = _run_tmux(["send-keys", "-t", target, "C-m"])
    if code != 0:
        logger.warning("tmux submit failed: %s", err.strip(), extra={"target": target})
        return False
    return True


def capture_tail(target: str, lines: int) -> Optional[str]:
    """Last `lines` non-empty-trailing lines of the pane's visible history, or None on failure."""
    n = max(1, int(lines))
    code, out, _ = _run_tmux(["capture-pane", "-p", "-J", "-t", target, "-S", f"-{n}"])
    if code != 0:
        return None
    rows = out.rstrip("\n").split("\n")
    while rows and not rows[-1].strip():
        rows.pop()
    return "\n".join(rows[-n:])


class TmuxPaneWriter:
    """Pane-writer capability backed by tmux."""

    def write(self, target: str, text: str) -> bool:
        return write(target, text)

    def capture_tail(self, target: str, lines: int) -> Optional[str]:
        return capture_tail(target, lines)
