"""
Outbound notifier: typed event -> text -> session room, plus typing state.

Typing reflects who the session is waiting on: on while the agent works
(session start, tool use), off when it needs the human (question, permission,
stop), untouched otherwise.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol, Sequence, Tuple

from ..contracts.v1 import (
    OtherEvent,
    PermissionEvent,
    QuestionEvent,
    SessionStartEvent,
    StopEvent,
    ToolUseEvent,
    TypedEvent,
)
from ..kernel.identity import SessionContext
from ..kernel.rooms import RoomResolver
from ..ports.matrix.client import MatrixError

logger = logging.getLogger("panelink.notifier")

SHELL_TOOLS = ("Bash",)
FILE_TOOLS = ("Edit", "MultiEdit", "Write", "Read", "NotebookEdit")

DEFAULT_STOP_TEXT = "Waiting for your input."
DEFAULT_OTHER_TEXT = "Notification from your agent session"


class NotifyClient(Protocol):
    def joined_rooms(self) -> Sequence[str]: ...

    def create_direct_room(self, invitee: str, name: str) -> str: ...

    def send_text(self, room_id: str, text: str) -> str: ...

    def set_typing(self, room_id: str, typing: bool, timeout_ms: Optional[int] = None) -> None: ...


def render_session_start(ctx: SessionContext, *, is_existing: bool) -> str:
    lines = ctx.context_lines()
    if is_existing:
        return "\n".join(["---", "📍 **New Session**", *lines])
    return "\n".join(["🚀 **Agent Session Started**", *lines])


def render_question(event: QuestionEvent) -> str:
    text = "❓ **Your agent is asking:**\n\n"
    if not event.questions:
        return text + (event.message or "(no question text)")
    for q in event.questions:
        text += f"**{q.header or 'Question'}:** {q.question}\n"
        if q.options:
            text += "Options:\n"
            for i, opt in enumerate(q.options, start=1):
                text += f"  {i}. {opt.label} - {opt.description}\n"
        text += "\n"
    return text.rstrip("\n")


def render_permission(event: PermissionEvent) -> str:
    tool = event.tool_name or "unknown tool"
    head = f"🔐 **Permission requested:** {tool}"
    args = event.tool_input or {}

    if tool in SHELL_TOOLS and isinstance(args.get("command"), str):
        body = f"```\n{args['command']}\n```"
        desc = args.get("description")
        if isinstance(desc, str) and desc.strip():
            body = f"{desc.strip()}\n{body}"
    elif tool in FILE_TOOLS and isinstance(args.get("file_path"), str):
        body = f"File: `{args['file_path']}`"
    elif args:
        body = "```json\n" + json.dumps(args, indent=2, ensure_ascii=False, default=str) + "\n```"
    else:
        body = event.message or ""

    return f"{head}\n{body}".rstrip()


def render(event: TypedEvent) -> Tuple[str, Optional[bool]]:
    """Text and typing state for every kind except session_start (see notify)."""
    if isinstance(event, QuestionEvent):
        return render_question(event), False
    if isinstance(event, PermissionEvent):
        return render_permission(event), False
    if isinstance(event, StopEvent):
        return event.message or DEFAULT_STOP_TEXT, False
    if isinstance(event, ToolUseEvent):
        return f"🔧 **Tool:** {event.tool_name}\n{event.message or ''}".rstrip(), True
    if isinstance(event, OtherEvent):
        return event.message or DEFAULT_OTHER_TEXT, None
    raise TypeError(f"unhandled event kind: {type(event).__name__}")


class Notifier:
    def __init__(
        self,
        client: NotifyClient,
        resolver: RoomResolver,
        recipient_id: str,
        *,
        typing_timeout_ms: int = 30000,
    ):
        self.client = client
        self.resolver = resolver
        self.recipient_id = recipient_id
        self.typing_timeout_ms = typing_timeout_ms

    def _resolve(self, ctx: SessionContext, hint: Optional[str]) -> Tuple[str, bool]:
        room_id, is_existing = self.resolver.resolve(self.client, self.recipient_id, ctx.session_key, hint)
        ctx.current_room = room_id
        return room_id, is_existing

    def notify(self, event: TypedEvent, ctx: SessionContext) -> Tuple[str, bool]:
        """Send one event to the session's room; transport errors propagate."""
        if isinstance(event, SessionStartEvent):
            # Wording depends on whether the room already existed.
            room_id, is_existing = self._resolve(ctx, ctx.session_key)
            text, typing = render_session_start(ctx, is_existing=is_existing), True
        else:
            text, typing = render(event)
            room_id, is_existing = self._resolve(ctx, None)

        self.client.send_text(room_id, text)
        logger.info("sent %s", event.kind, extra={"room_id": room_id, "session_key": ctx.session_key})

        if typing is not None:
            # Best effort once the message is out.
            try:
                self.set_typing(ctx, typing)
            except MatrixError as e:
                logger.warning("typing update failed: %s", e, extra={"room_id": room_id})
        return room_id, is_existing

    def send_message(self, text: str, ctx: SessionContext) -> Tuple[str, bool]:
        room_id, is_existing = self._resolve(ctx, None)
        self.client.send_text(room_id, text)
        return room_id, is_existing

    def set_typing(self, ctx: SessionContext, typing: bool) -> None:
        """No-op until this session has resolved a room."""
        if not ctx.current_room:
            return
        self.client.set_typing(ctx.current_room, typing, self.typing_timeout_ms if typing else None)
