"""Typed outbound notifications.

One model per event kind, joined into a discriminated union on `kind`, so a
new kind cannot reach the renderer without a matching case.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class QuestionOption(BaseModel):
    label: str = ""
    description: str = ""

    model_config = ConfigDict(extra="ignore")


class Question(BaseModel):
    header: str = ""
    question: str = ""
    options: List[QuestionOption] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class SessionStartEvent(BaseModel):
    kind: Literal["session_start"] = "session_start"
    session_id: str = ""

    model_config = ConfigDict(extra="forbid")


class QuestionEvent(BaseModel):
    kind: Literal["question"] = "question"
    session_id: str = ""
    questions: List[Question] = Field(default_factory=list)
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PermissionEvent(BaseModel):
    kind: Literal["permission"] = "permission"
    session_id: str = ""
    tool_name: str = ""
    tool_input: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class StopEvent(BaseModel):
    kind: Literal["stop"] = "stop"
    session_id: str = ""
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ToolUseEvent(BaseModel):
    kind: Literal["tool_use"] = "tool_use"
    session_id: str = ""
    tool_name: str = ""
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class OtherEvent(BaseModel):
    kind: Literal["other"] = "other"
    session_id: str = ""
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


TypedEvent = Annotated[
    Union[SessionStartEvent, QuestionEvent, PermissionEvent, StopEvent, ToolUseEvent, OtherEvent],
    Field(discriminator="kind"),
]

_TYPED_EVENT: TypeAdapter[Any] = TypeAdapter(TypedEvent)


def parse_typed_event(obj: Any) -> Any:
    """Validate a plain dict (e.g. from `panelink notify` stdin) into a TypedEvent."""
    return _TYPED_EVENT.validate_python(obj)
