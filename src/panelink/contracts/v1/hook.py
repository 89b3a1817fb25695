"""Hook payload crossing the local event relay.

Field names follow what the wrapped CLI writes on a hook's stdin. Only the
shape is checked here, loosely: non-string values in text fields are
stringified, a null name, session or cwd reads as empty, and a non-object
tool_input reads as {}. Unknown event names are dropped later,
when the payload is translated into a typed event.
"""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HookPayload(BaseModel):
    hook_event_name: str = ""
    session_id: str = ""
    cwd: str = ""
    tool_name: Optional[str] = None
    tool_input: Dict[str, Any] = Field(default_factory=dict)
    transcript_path: Optional[str] = None
    notification_type: Optional[str] = None
    message: Optional[str] = None

    # Hosts add fields between releases; keep them instead of rejecting the payload.
    model_config = ConfigDict(extra="allow")

    @field_validator("hook_event_name", "session_id", "cwd", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("tool_name", "transcript_path", "notification_type", "message", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("tool_input", mode="before")
    @classmethod
    def coerce_arguments(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


RelayResult = Literal["delivered", "unreachable", "malformed"]
