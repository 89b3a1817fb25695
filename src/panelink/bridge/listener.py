"""
Inbound listener: remote replies -> local pane.

Lifecycle: stopped -> syncing (start) -> ready (backfill done) -> stopped (stop).
A timeline event reaches the pane writer only if it is live, arrives while
ready, is a text message from someone else, has not been seen before, maps to
a known session with a tmux pane, and that pane is ours when a target filter
is set.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from ..kernel.dedup import DEFAULT_CAPACITY, RecentIds
from ..kernel.identity import tmux_target
from ..kernel.store import SessionStore
from ..ports.matrix.client import SYNC_PREPARED, SYNC_STOPPED, TimelineEvent

logger = logging.getLogger("panelink.listener")


class ListenerState(str, Enum):
    STOPPED = "stopped"
    SYNCING = "syncing"
    READY = "ready"


class PaneWriter(Protocol):
    def write(self, target: str, text: str) -> bool: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class TimelineSource(Protocol):
    def subscribe_timeline(
        self,
        on_event: Callable[[TimelineEvent, bool], None],
        on_state: Optional[Callable[[str], None]] = None,
        *,
        timeout_ms: int = 30000,
    ) -> Cancellable: ...


# (access_token, user_id) -> client able to stream the timeline
ClientFactory = Callable[[str, str], TimelineSource]


class InboundListener:
    def __init__(
        self,
        store: SessionStore,
        writer: PaneWriter,
        client_factory: ClientFactory,
        *,
        target_filter: Optional[str] = None,
        dedup_capacity: int = DEFAULT_CAPACITY,
        sync_timeout_ms: int = 30000,
    ):
        self.store = store
        self.writer = writer
        self.client_factory = client_factory
        self.target_filter = target_filter
        self.sync_timeout_ms = sync_timeout_ms

        self.state = ListenerState.STOPPED
        self.user_id: Optional[str] = None
        self.room_to_session: Dict[str, str] = {}
        self.seen = RecentIds(dedup_capacity)

        self._subscription: Optional[Cancellable] = None
        self._lock = threading.Lock()

    def start(self) -> bool:
        """False (not an error) when no credential has been cached yet."""
        record = self.store.load()
        if not record.has_credentials():
            logger.warning("no cached session; inbound relay disabled until setup completes")
            return False

        self.user_id = record.user_id
        self.room_to_session = record.room_to_session()
        logger.debug("watching %d rooms", len(self.room_to_session))

        client = self.client_factory(record.access_token or "", record.user_id or "")
        with self._lock:
            self.state = ListenerState.SYNCING
        self._subscription = client.subscribe_timeline(
            self.on_timeline, self.on_sync_state, timeout_ms=self.sync_timeout_ms
        )
        return True

    def stop(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.cancel()
        with self._lock:
            self.state = ListenerState.STOPPED

    def refresh_room_mapping(self) -> None:
        """Re-read the store so sessions created after start become deliverable."""
        self.room_to_session = self.store.load().room_to_session()

    def on_sync_state(self, state: str) -> None:
        with self._lock:
            if state == SYNC_PREPARED and self.state == ListenerState.SYNCING:
                self.state = ListenerState.READY
                logger.info("initial sync complete; listening for replies")
            elif state == SYNC_STOPPED:
                self.state = ListenerState.STOPPED

    def on_timeline(self, event: TimelineEvent, is_historical: bool) -> None:
        if is_historical:
            return
        if self.state != ListenerState.READY:
            return
        if event.type != "m.room.message" or event.msgtype != "m.text":
            return
        if event.sender == self.user_id:
            return
        if not self.seen.add(event.event_id):
            logger.debug("duplicate event", extra={"event_id": event.event_id})
            return

        key = self.room_to_session.get(event.room_id)
        if not key:
            logger.debug("room not mapped to a session", extra={"room_id": event.room_id})
            return

        target = tmux_target(key)
        if not target:
            logger.info("session has no tmux target", extra={"session_key": key})
            return

        if self.target_filter and target != self.target_filter:
            logger.debug("message for another coordinator's pane", extra={"target": target})
            return

        self._deliver(target, event)

    def _deliver(self, target: str, event: TimelineEvent) -> None:
        try:
            ok = self.writer.write(target, event.body)
        except Exception:
            logger.exception("pane write raised", extra={"target": target, "event_id": event.event_id})
            return
        if ok:
            logger.info("delivered reply", extra={"target": target, "event_id": event.event_id})
        else:
            logger.warning("pane write failed; reply dropped", extra={"target": target, "event_id": event.event_id})
