"""Hook-side relay client.

Runs inside a short-lived hook process: read the hook payload from stdin and
hand it to the coordinator's socket. Whatever happens, the process exits 0 so
the wrapped program never sees a failing hook.
"""
from __future__ import annotations

import json
import os
import socket
import sys
from typing import Optional

from ..contracts.v1 import RelayResult

SOCKET_ENV = "PANELINK_SOCKET"


def ping(socket_path: Optional[str], data: bytes, *, timeout_s: float = 5.0) -> RelayResult:
    if not data.strip():
        return "malformed"
    try:
        json.loads(data.decode("utf-8", errors="replace"))
    except ValueError:
        return "malformed"
    if not socket_path:
        return "unreachable"
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
            s.settimeout(timeout_s)
            s.connect(socket_path)
            s.sendall(data)
            # EOF marks the end of the document on the relay side.
            s.shutdown(socket.SHUT_WR)
    except OSError:
        return "unreachable"
    return "delivered"


def main(argv: Optional[list] = None) -> int:
    _ = argv
    try:
        data = sys.stdin.buffer.read()
    except (OSError, ValueError):
        return 0
    result = ping(os.environ.get(SOCKET_ENV, "").strip() or None, data)
    if os.environ.get("PANELINK_DEBUG"):
        print(f"[panelink hook] {result}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
