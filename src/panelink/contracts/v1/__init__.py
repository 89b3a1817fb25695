from __future__ import annotations

from .hook import HookPayload, RelayResult
from .notify import (
    OtherEvent,
    PermissionEvent,
    Question,
    QuestionEvent,
    QuestionOption,
    SessionStartEvent,
    StopEvent,
    ToolUseEvent,
    TypedEvent,
    parse_typed_event,
)

__all__ = [
    "HookPayload",
    "OtherEvent",
    "PermissionEvent",
    "Question",
    "QuestionEvent",
    "QuestionOption",
    "RelayResult",
    "SessionStartEvent",
    "StopEvent",
    "ToolUseEvent",
    "TypedEvent",
    "parse_typed_event",
]
