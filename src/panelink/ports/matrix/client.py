"""
Matrix client-server API adapter.

Covers the handful of endpoints the bridge needs:
- login / whoami (credential cache + one re-login on expiry)
- joined_rooms / createRoom (session rooms)
- send / typing (outbound notifications)
- sync long-poll (inbound timeline, run on a background thread)
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...kernel.config import BridgeConfig
from ...kernel.store import SessionStore

logger = logging.getLogger("panelink.matrix")

API_PREFIX = "/_matrix/client/v3"

# Sync states passed to on_state.
SYNC_PREPARED = "PREPARED"
SYNC_SYNCING = "SYNCING"
SYNC_ERROR = "ERROR"
SYNC_STOPPED = "STOPPED"

# Initial sync: no timeline backfill, state only.
INITIAL_SYNC_FILTER = {"room": {"timeline": {"limit": 0}}}


class MatrixError(RuntimeError):
    """Homeserver or transport failure."""

    def __init__(self, message: str, *, status: int = 0, errcode: str = ""):
        super().__init__(message)
        self.status = status
        self.errcode = errcode

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401 or self.errcode in ("M_UNKNOWN_TOKEN", "M_MISSING_TOKEN")


@dataclass(frozen=True)
class TimelineEvent:
    event_id: str
    room_id: str
    sender: str
    type: str
    msgtype: str = ""
    body: str = ""

    @classmethod
    def from_raw(cls, room_id: str, raw: Dict[str, Any]) -> "TimelineEvent":
        content = raw.get("content") if isinstance(raw.get("content"), dict) else {}
        body = content.get("body")
        return cls(
            event_id=str(raw.get("event_id") or ""),
            room_id=room_id,
            sender=str(raw.get("sender") or ""),
            type=str(raw.get("type") or ""),
            msgtype=str(content.get("msgtype") or ""),
            body=body if isinstance(body, str) else "",
        )


TimelineCallback = Callable[[TimelineEvent, bool], None]
SyncStateCallback = Callable[[str], None]


class MatrixClient:
    def __init__(
        self,
        homeserver: str,
        *,
        access_token: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout_s: float = 30.0,
    ):
        self.homeserver = homeserver.rstrip("/")
        self.access_token = access_token
        self.user_id = user_id
        self.timeout_s = timeout_s

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _api(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        query: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        auth: bool = True,
    ) -> Dict[str, Any]:
        url = self.homeserver + API_PREFIX + path
        if query:
            url += "?" + urllib.parse.urlencode({k: v for k, v in query.items() if v is not None})
        data = None
        if body is not None:
            data = json.dumps(body, ensure_ascii=False).encode("utf-8")

        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json; charset=utf-8")
        if auth:
            if not self.access_token:
                raise MatrixError("no access token", status=401, errcode="M_MISSING_TOKEN")
            req.add_header("Authorization", f"Bearer {self.access_token}")

        try:
            with urllib.request.urlopen(req, timeout=timeout or self.timeout_s) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            errcode, message = "", str(e)
            try:
                doc = json.loads(e.read().decode("utf-8", "ignore") or "{}")
                errcode = str(doc.get("errcode") or "")
                message = str(doc.get("error") or message)
            except (OSError, ValueError):
                pass
            raise MatrixError(f"{method} {path}: {message}", status=e.code, errcode=errcode) from e
        except (urllib.error.URLError, OSError) as e:
            raise MatrixError(f"{method} {path}: {e}") from e

        try:
            doc = json.loads(raw or "{}")
        except ValueError as e:
            raise MatrixError(f"{method} {path}: invalid JSON response") from e
        return doc if isinstance(doc, dict) else {}

    @staticmethod
    def _q(value: str) -> str:
        return urllib.parse.quote(value, safe="")

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def login(self, user: str, password: str) -> Tuple[str, str]:
        doc = self._api(
            "POST",
            "/login",
            {
                "type": "m.login.password",
                "identifier": {"type": "m.id.user", "user": user},
                "password": password,
                "initial_device_display_name": "panelink",
            },
            auth=False,
        )
        token = str(doc.get("access_token") or "")
        user_id = str(doc.get("user_id") or "")
        if not token or not user_id:
            raise MatrixError("login: response missing access_token/user_id")
        self.access_token = token
        self.user_id = user_id
        return token, user_id

    def whoami(self) -> str:
        doc = self._api("GET", "/account/whoami")
        user_id = str(doc.get("user_id") or "")
        if not user_id:
            raise MatrixError("whoami: response missing user_id")
        return user_id

    def joined_rooms(self) -> List[str]:
        doc = self._api("GET", "/joined_rooms")
        rooms = doc.get("joined_rooms")
        return [str(r) for r in rooms] if isinstance(rooms, list) else []

    def create_direct_room(self, invitee: str, name: str) -> str:
        doc = self._api(
            "POST",
            "/createRoom",
            {
                "preset": "trusted_private_chat",
                "invite": [invitee],
                "is_direct": True,
                "name": name,
            },
        )
        room_id = str(doc.get("room_id") or "")
        if not room_id:
            raise MatrixError("createRoom: response missing room_id")
        return room_id

    def send_text(self, room_id: str, text: str) -> str:
        txn = uuid.uuid4().hex
        doc = self._api(
            "PUT",
            f"/rooms/{self._q(room_id)}/send/m.room.message/{txn}",
            {"msgtype": "m.text", "body": text},
        )
        return str(doc.get("event_id") or "")

    def set_typing(self, room_id: str, typing: bool, timeout_ms: Optional[int] = None) -> None:
        if not self.user_id:
            raise MatrixError("typing: unknown user id")
        body: Dict[str, Any] = {"typing": bool(typing)}
        if typing and timeout_ms:
            body["timeout"] = int(timeout_ms)
        self._api("PUT", f"/rooms/{self._q(room_id)}/typing/{self._q(self.user_id)}", body)

    def sync(
        self,
        *,
        since: Optional[str] = None,
        timeout_ms: int = 30000,
        sync_filter: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"timeout": int(timeout_ms)}
        if since:
            query["since"] = since
        if sync_filter is not None:
            query["filter"] = json.dumps(sync_filter, separators=(",", ":"))
        # Leave headroom over the server-side long-poll before the socket times out.
        return self._api("GET", "/sync", query=query, timeout=timeout_ms / 1000.0 + 15.0)

    def subscribe_timeline(
        self,
        on_event: TimelineCallback,
        on_state: Optional[SyncStateCallback] = None,
        *,
        timeout_ms: int = 30000,
    ) -> "Subscription":
        sub = Subscription(self, on_event, on_state, timeout_ms=timeout_ms)
        sub.start()
        return sub


def iter_timeline(response: Dict[str, Any]) -> List[TimelineEvent]:
    """Flatten joined-room timelines of one /sync response, per-room order preserved."""
    out: List[TimelineEvent] = []
    rooms = response.get("rooms") if isinstance(response.get("rooms"), dict) else {}
    joined = rooms.get("join") if isinstance(rooms.get("join"), dict) else {}
    for room_id, room in joined.items():
        if not isinstance(room, dict):
            continue
        timeline = room.get("timeline") if isinstance(room.get("timeline"), dict) else {}
        events = timeline.get("events") if isinstance(timeline.get("events"), list) else []
        for raw in events:
            if isinstance(raw, dict):
                out.append(TimelineEvent.from_raw(str(room_id), raw))
    return out


class Subscription:
    """Long-poll /sync loop on a daemon thread; `cancel()` stops it.

    Callbacks run on the loop thread, one event at a time. The first response
    is the historical backfill: its events are flagged historical and it ends
    with SYNC_PREPARED.
    """

    def __init__(
        self,
        client: MatrixClient,
        on_event: TimelineCallback,
        on_state: Optional[SyncStateCallback],
        *,
        timeout_ms: int = 30000,
    ):
        self.client = client
        self.on_event = on_event
        self.on_state = on_state
        self.timeout_ms = timeout_ms
        self.since: Optional[str] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="panelink-sync", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def _emit_state(self, state: str) -> None:
        if self.on_state is None:
            return
        try:
            self.on_state(state)
        except Exception:
            logger.exception("sync state callback failed")

    def poll_once(self) -> None:
        """One /sync round trip; raises MatrixError on failure."""
        initial = self.since is None
        resp = self.client.sync(
            since=self.since,
            timeout_ms=0 if initial else self.timeout_ms,
            sync_filter=INITIAL_SYNC_FILTER if initial else None,
        )
        for ev in iter_timeline(resp):
            if self._stop.is_set():
                return
            try:
                self.on_event(ev, initial)
            except Exception:
                logger.exception("timeline callback failed", extra={"event_id": ev.event_id})
        next_batch = resp.get("next_batch")
        if isinstance(next_batch, str) and next_batch:
            self.since = next_batch
        self._emit_state(SYNC_PREPARED if initial else SYNC_SYNCING)

    def _run(self) -> None:
        backoff = 1.0
        while not self._stop.is_set():
            try:
                self.poll_once()
                backoff = 1.0
            except MatrixError as e:
                logger.warning("sync failed (retry in %.0fs): %s", backoff, e)
                self._emit_state(SYNC_ERROR)
                if self._stop.wait(backoff):
                    break
                backoff = min(backoff * 2.0, 30.0)
        self._emit_state(SYNC_STOPPED)


def open_client(config: BridgeConfig, store: Optional[SessionStore] = None) -> MatrixClient:
    """Authenticated client: cached token if still valid, else one fresh login.

    A rejected login propagates as MatrixError.
    """
    st = store or SessionStore()
    record = st.load()

    if record.has_credentials():
        client = MatrixClient(config.homeserver, access_token=record.access_token, user_id=record.user_id)
        try:
            client.whoami()
            return client
        except MatrixError as e:
            logger.info("cached token rejected, logging in again: %s", e)

    client = MatrixClient(config.homeserver)
    token, user_id = client.login(config.user, config.password)

    record = st.load()
    record.access_token = token
    record.user_id = user_id
    st.save(record)
    return client
