"""Hook payload -> typed event."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from ..contracts.v1 import (
    HookPayload,
    OtherEvent,
    PermissionEvent,
    Question,
    QuestionEvent,
    SessionStartEvent,
    StopEvent,
    ToolUseEvent,
    TypedEvent,
)

logger = logging.getLogger("panelink.events")

QUESTION_TOOL = "AskUserQuestion"


def _questions(tool_input: Any) -> List[Question]:
    raw = tool_input.get("questions") if isinstance(tool_input, dict) else None
    if not isinstance(raw, list):
        return []
    out: List[Question] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            out.append(Question.model_validate(item))
        except ValidationError:
            continue
    return out


def typed_event_from_hook(payload: HookPayload) -> Optional[TypedEvent]:
    """Map a hook payload to a TypedEvent; None for event names we do not relay."""
    name = payload.hook_event_name
    sid = payload.session_id

    if name == "SessionStart":
        return SessionStartEvent(session_id=sid)

    if name == "PreToolUse":
        if payload.tool_name == QUESTION_TOOL:
            return QuestionEvent(session_id=sid, questions=_questions(payload.tool_input), message=payload.message)
        return ToolUseEvent(session_id=sid, tool_name=payload.tool_name or "", message=payload.message)

    if name == "PermissionRequest":
        return PermissionEvent(
            session_id=sid,
            tool_name=payload.tool_name or "",
            tool_input=dict(payload.tool_input or {}),
            message=payload.message,
        )

    if name == "Notification":
        kind = (payload.notification_type or "").strip()
        if kind == "permission_prompt":
            return PermissionEvent(
                session_id=sid,
                tool_name=payload.tool_name or "",
                tool_input=dict(payload.tool_input or {}),
                message=payload.message,
            )
        if kind == "idle_prompt":
            return StopEvent(session_id=sid, message=payload.message)
        return OtherEvent(session_id=sid, message=payload.message)

    if name in ("Stop", "SubagentStop"):
        return StopEvent(session_id=sid, message=payload.message)

    logger.debug("ignoring hook event %r", name, extra={"hook_event": name})
    return None
