"""Event relay: a per-run Unix socket that hook processes ping.

One connection carries one UTF-8 JSON document, terminated by the client
closing its write side. Each accepted, parseable payload is handed to the
`on_hook` callback; anything else is logged and dropped.
"""
from __future__ import annotations

import json
import logging
import queue
import socket
import threading
import uuid
from pathlib import Path
from typing import Callable, Optional, Set

from pydantic import ValidationError

from ..contracts.v1 import HookPayload
from ..paths import relay_socket_dir

logger = logging.getLogger("panelink.relay")

MAX_PAYLOAD_BYTES = 4_000_000

HookCallback = Callable[[HookPayload], None]


def socket_path_for_run(run_id: str, directory: Optional[Path] = None) -> Path:
    return (directory or relay_socket_dir()) / f"panelink-{run_id}.sock"


def _recv_all(conn: socket.socket) -> bytes:
    buf = b""
    while True:
        chunk = conn.recv(65536)
        if not chunk:
            break
        buf += chunk
        if len(buf) > MAX_PAYLOAD_BYTES:
            raise ValueError("payload too large")
    return buf


def parse_payload(data: bytes) -> HookPayload:
    """Raise ValueError for anything that is not a JSON object."""
    try:
        obj = json.loads(data.decode("utf-8", errors="replace"))
    except ValueError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise ValueError("payload is not a JSON object")
    try:
        return HookPayload.model_validate(obj)
    except ValidationError as e:
        raise ValueError(f"payload rejected: {e}") from e


class EventRelay:
    """Accept thread + one reader thread per connection + one dispatcher.

    Readers only receive and parse, so a client that never closes its write
    side holds up nobody but itself. Parsed payloads are queued and handed to
    `on_hook` one at a time, in arrival order, on the dispatcher thread.
    """

    def __init__(self, on_hook: HookCallback, *, run_id: Optional[str] = None, socket_dir: Optional[Path] = None):
        self.on_hook = on_hook
        self.run_id = run_id or uuid.uuid4().hex
        self.socket_path = socket_path_for_run(self.run_id, socket_dir)
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._queue: "queue.Queue[Optional[HookPayload]]" = queue.Queue()
        self._conns: Set[socket.socket] = set()
        self._stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._sock is not None and not self._stop.is_set()

    def start(self) -> str:
        with self._lock:
            if self._sock is not None:
                return str(self.socket_path)

            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
            # The path embeds a fresh run id, so an existing file is a leftover from a crashed run.
            try:
                self.socket_path.unlink()
            except FileNotFoundError:
                pass

            s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                s.bind(str(self.socket_path))
                self.socket_path.chmod(0o600)
                s.listen(16)
                s.settimeout(0.5)  # Allow periodic check of stop flag
            except OSError:
                s.close()
                raise
            self._sock = s
            self._stop.clear()
            self._queue = queue.Queue()
            self._dispatcher = threading.Thread(target=self._dispatch, name="panelink-relay-dispatch", daemon=True)
            self._dispatcher.start()
            self._thread = threading.Thread(target=self._serve, name="panelink-relay", daemon=True)
            self._thread.start()

        logger.info("relay listening", extra={"socket_path": str(self.socket_path)})
        return str(self.socket_path)

    def _serve(self) -> None:
        sock = self._sock
        if sock is None:
            return
        while not self._stop.is_set():
            try:
                conn, _ = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._stop.is_set():
                    break
                continue
            with self._lock:
                self._conns.add(conn)
            threading.Thread(target=self._read, args=(conn,), name="panelink-relay-conn", daemon=True).start()

    def _read(self, conn: socket.socket) -> None:
        try:
            conn.settimeout(None)
            data = _recv_all(conn)
        except (OSError, ValueError) as e:
            if not self._stop.is_set():
                logger.warning("relay read failed: %s", e)
            return
        finally:
            with self._lock:
                self._conns.discard(conn)
            try:
                conn.close()
            except OSError:
                pass

        try:
            payload = parse_payload(data)
        except ValueError as e:
            logger.warning("dropping malformed hook payload: %s", e)
            return

        logger.debug("hook received", extra={"hook_event": payload.hook_event_name})
        self._queue.put(payload)

    def _dispatch(self) -> None:
        q = self._queue
        while True:
            payload = q.get()
            if payload is None:
                break
            try:
                self.on_hook(payload)
            except Exception:
                logger.exception("hook handler failed", extra={"hook_event": payload.hook_event_name})

    def stop(self) -> None:
        """Close the endpoint and remove the socket file; safe to call repeatedly."""
        with self._lock:
            self._stop.set()
            sock, self._sock = self._sock, None
            thread, self._thread = self._thread, None
            dispatcher, self._dispatcher = self._dispatcher, None
            conns, self._conns = list(self._conns), set()
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass
            for conn in conns:
                # Unblocks readers still waiting for a client's EOF.
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
            if dispatcher is not None:
                self._queue.put(None)
            try:
                self.socket_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("could not remove relay socket: %s", e)
        current = threading.current_thread()
        for t in (thread, dispatcher):
            if t is not None and t is not current:
                t.join(timeout=2.0)
