"""Persistent session store (`session.json`).

Single-writer, last-write-wins: callers load, mutate and save the whole
record. Two coordinators sharing one file can race on `rooms`/`currentRoom`;
the per-target listener filter is the only mitigation.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..paths import session_path
from ..util.fs import atomic_write_json, read_json

logger = logging.getLogger("panelink.store")


class SessionRecord(BaseModel):
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    user_id: Optional[str] = Field(default=None, alias="userId")
    rooms: Dict[str, str] = Field(default_factory=dict)
    current_room: Optional[str] = Field(default=None, alias="currentRoom")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def has_credentials(self) -> bool:
        return bool(self.access_token and self.user_id)

    def room_to_session(self) -> Dict[str, str]:
        """Reverse index room_id -> session key."""
        return {room_id: key for key, room_id in self.rooms.items() if room_id}


class SessionStore:
    def __init__(self, path: Optional[Path] = None):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path or session_path()

    def load(self) -> SessionRecord:
        """Never raises: absent or unparseable files load as an empty record."""
        doc = read_json(self.path)
        try:
            return SessionRecord.model_validate(doc)
        except ValidationError as e:
            logger.warning("session record invalid, starting empty: %s", e.errors()[:1])
            return SessionRecord()

    def save(self, record: SessionRecord) -> None:
        atomic_write_json(self.path, record.model_dump(by_alias=True, exclude_none=True))
