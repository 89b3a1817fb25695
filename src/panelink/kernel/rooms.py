"""Session key -> room resolution.

A recorded room is reused only while the bot is still joined to it; otherwise a
fresh direct room replaces it. Transport errors propagate: the caller decides
whether a failed notification matters.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, Tuple

from ..ports.matrix.client import MatrixError
from ..util.time import room_stamp
from .store import SessionStore

logger = logging.getLogger("panelink.rooms")

DEFAULT_ROOM_PREFIX = "Agent"


class RoomClient(Protocol):
    def joined_rooms(self) -> Sequence[str]: ...

    def create_direct_room(self, invitee: str, name: str) -> str: ...


def room_name(display_name_hint: Optional[str], *, prefix: str = DEFAULT_ROOM_PREFIX) -> str:
    hint = (display_name_hint or "").strip()
    if hint:
        return f"{prefix}: {hint}"
    return f"{prefix} {room_stamp()}"


class RoomResolver:
    def __init__(self, store: SessionStore, *, prefix: str = DEFAULT_ROOM_PREFIX):
        self.store = store
        self.prefix = prefix

    def resolve(
        self,
        client: RoomClient,
        recipient_id: str,
        session_key: Optional[str],
        display_name_hint: Optional[str] = None,
    ) -> Tuple[str, bool]:
        """Return (room_id, is_existing) for `session_key`, creating a room if needed."""
        record = self.store.load()

        existing = record.rooms.get(session_key) if session_key else None
        if existing:
            joined: Sequence[str] = ()
            try:
                joined = client.joined_rooms()
            except MatrixError as e:
                # Membership unknown: treat like a stale room and replace it.
                logger.warning("joined_rooms failed, replacing room: %s", e, extra={"room_id": existing})
            if existing in joined:
                record.current_room = existing
                self.store.save(record)
                return existing, True
            logger.info("recorded room no longer joined", extra={"room_id": existing, "session_key": session_key})

        room_id = client.create_direct_room(recipient_id, room_name(display_name_hint, prefix=self.prefix))
        logger.info("created room", extra={"room_id": room_id, "session_key": session_key or ""})

        # Re-read so a concurrent writer's unrelated entries survive this save.
        record = self.store.load()
        if session_key:
            record.rooms[session_key] = room_id
        record.current_room = room_id
        self.store.save(record)
        return room_id, False
