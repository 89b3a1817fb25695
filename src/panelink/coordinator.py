"""
Coordinator: one per wrapped-program run.

Starts the event relay and the inbound listener, spawns the program with hooks
pointing at the relay, turns hook pings into notifications, and tears both
channels down when the program exits.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .bridge.commands import CommandRouter
from .bridge.events import typed_event_from_hook
from .bridge.listener import InboundListener, PaneWriter
from .bridge.notifier import Notifier
from .contracts.v1 import HookPayload
from .kernel.config import BridgeConfig
from .kernel.identity import SessionContext, detect_context, session_key
from .kernel.rooms import RoomResolver
from .kernel.settings import Settings
from .kernel.store import SessionStore
from .ports.matrix.client import MatrixClient, MatrixError
from .relay.client import SOCKET_ENV
from .relay.hooks import hook_settings_json
from .relay.server import EventRelay
from .runners.tmux import TmuxPaneWriter

logger = logging.getLogger("panelink.coordinator")


def exit_code(returncode: int) -> int:
    """Shell convention: death by signal N exits 128+N."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


def build_child_argv(program: str, args: List[str], socket_path: str, settings: Settings) -> List[str]:
    argv = [program, *args]
    if Path(program).name in settings.inject_hooks_for:
        argv[1:1] = ["--settings", hook_settings_json(socket_path, timeout_s=settings.hook_timeout_s)]
    return argv


class RefreshTimer:
    def __init__(self, interval_s: float, fn: Any):
        self.interval_s = interval_s
        self.fn = fn
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="panelink-refresh", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.fn()
            except Exception:
                logger.exception("room mapping refresh failed")

    def stop(self) -> None:
        self._stop.set()


class Coordinator:
    def __init__(
        self,
        config: BridgeConfig,
        settings: Settings,
        client: MatrixClient,
        *,
        store: Optional[SessionStore] = None,
        writer: Optional[PaneWriter] = None,
        context: Optional[SessionContext] = None,
        all_panes: bool = False,
    ):
        self.config = config
        self.settings = settings
        self.client = client
        self.store = store or SessionStore()
        self.context = context or detect_context()
        self.all_panes = all_panes

        self.notifier = Notifier(
            client,
            RoomResolver(self.store, prefix=settings.room_name_prefix),
            config.recipient,
            typing_timeout_ms=settings.typing_timeout_ms,
        )
        self.relay = EventRelay(self.handle_hook)
        self.listener = InboundListener(
            self.store,
            writer
            or CommandRouter(
                TmuxPaneWriter(),
                client,
                self.store,
                prefix=settings.command_prefix,
                tail_default=settings.tail_default_lines,
                tail_max=settings.tail_max_lines,
            ),
            self._listener_client,
            target_filter=None if all_panes else self.context.tmux_pane,
            sync_timeout_ms=settings.sync_timeout_ms,
        )
        self._refresh: Optional[RefreshTimer] = None
        self._contexts: Dict[str, SessionContext] = {self.context.session_key: self.context}
        self._child: Optional[subprocess.Popen] = None

    def _listener_client(self, access_token: str, user_id: str) -> MatrixClient:
        return MatrixClient(self.config.homeserver, access_token=access_token, user_id=user_id)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _context_for(self, payload: HookPayload) -> SessionContext:
        # Pane keys ignore cwd; directory keys follow the hook's cwd.
        if self.context.tmux_pane or not payload.cwd:
            return self.context
        key = session_key(payload.cwd, pane="", host=self.context.hostname)
        ctx = self._contexts.get(key)
        if ctx is None:
            ctx = SessionContext(
                session_key=key,
                hostname=self.context.hostname,
                cwd=payload.cwd,
                git_root=self.context.git_root if payload.cwd == self.context.cwd else None,
            )
            self._contexts[key] = ctx
        return ctx

    def _relogin(self) -> None:
        token, user_id = self.client.login(self.config.user, self.config.password)
        record = self.store.load()
        record.access_token = token
        record.user_id = user_id
        self.store.save(record)

    def handle_hook(self, payload: HookPayload) -> None:
        event = typed_event_from_hook(payload)
        if event is None:
            return
        ctx = self._context_for(payload)
        extra = {"hook_event": payload.hook_event_name, "session_key": ctx.session_key}
        try:
            self.notifier.notify(event, ctx)
            return
        except MatrixError as e:
            if not e.is_auth_error:
                # Best effort: a failed notification must not disturb the wrapped program.
                logger.warning("notification skipped: %s", e, extra=extra)
                return
            logger.info("access token rejected, logging in again", extra=extra)

        try:
            self._relogin()
            self.notifier.notify(event, ctx)
        except MatrixError as e:
            logger.warning("notification skipped after re-login: %s", e, extra=extra)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> str:
        socket_path = self.relay.start()
        if self.context.tmux_pane or self.all_panes:
            if self.listener.start():
                self._refresh = RefreshTimer(self.settings.refresh_interval_s, self.listener.refresh_room_mapping)
                self._refresh.start()
        else:
            logger.warning("not inside tmux; replies cannot be typed into this session")
        return socket_path

    def stop(self) -> None:
        if self._refresh is not None:
            self._refresh.stop()
            self._refresh = None
        self.listener.stop()
        self.relay.stop()

    def _forward_signal(self, signum: int, frame: Any) -> None:
        _ = frame
        child = self._child
        if child is not None and child.poll() is None:
            try:
                child.send_signal(signum)
            except OSError:
                pass

    def run(self, program: str, args: List[str]) -> int:
        socket_path = self.start()
        env = os.environ.copy()
        env[SOCKET_ENV] = socket_path
        argv = build_child_argv(program, args, socket_path, self.settings)

        previous: Dict[int, Any] = {}
        try:
            try:
                self._child = subprocess.Popen(argv, env=env)
            except OSError as e:
                logger.error("failed to start %s: %s", program, e)
                print(f"[panelink] failed to start {program}: {e}", file=sys.stderr)
                return 1

            # The terminal delivers Ctrl-C to the child directly; forwarding it would double it.
            previous[signal.SIGINT] = signal.signal(signal.SIGINT, signal.SIG_IGN)
            for sig in (signal.SIGTERM, signal.SIGHUP):
                previous[sig] = signal.signal(sig, self._forward_signal)

            rc = self._child.wait()
            logger.info("%s exited with %s", program, rc)
            return exit_code(rc)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.stop()
