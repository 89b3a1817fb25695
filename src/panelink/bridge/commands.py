"""
Remote chat commands.

Sits between the inbound listener and the tmux writer and implements the same
`write(target, text)` interface. Messages starting with the command prefix
(default `!`) are answered in the room instead of being typed into the pane:
- !help
- !tail [N]   last N lines of the pane
Anything else is passed through untouched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol

from ..kernel.identity import hostname
from ..kernel.store import SessionStore
from ..ports.matrix.client import MatrixError

logger = logging.getLogger("panelink.commands")


class CommandType(str, Enum):
    HELP = "help"
    TAIL = "tail"
    UNKNOWN = "unknown"

    # Not a command - pane input
    MESSAGE = "message"


@dataclass
class ParsedCommand:
    type: CommandType
    text: str
    name: str = ""
    args: List[str] = field(default_factory=list)


def parse_message(text: str, *, prefix: str = "!") -> ParsedCommand:
    """
    Examples (prefix "!"):
        "!help" -> HELP
        "!tail 50" -> TAIL args=["50"]
        "!frobnicate" -> UNKNOWN
        "/compact" -> MESSAGE (the agent's own slash commands pass through)
    """
    raw = text or ""
    stripped = raw.strip()
    if not prefix or not stripped.startswith(prefix):
        return ParsedCommand(type=CommandType.MESSAGE, text=raw)

    m = re.match(r"^(\w+)(?:\s+(.*))?$", stripped[len(prefix):], re.DOTALL)
    if not m:
        return ParsedCommand(type=CommandType.MESSAGE, text=raw)

    name = m.group(1).lower()
    args = (m.group(2) or "").split()
    try:
        ctype = CommandType(name)
    except ValueError:
        ctype = CommandType.UNKNOWN
    if ctype == CommandType.MESSAGE:
        ctype = CommandType.UNKNOWN
    return ParsedCommand(type=ctype, text=raw, name=name, args=args)


def format_help(prefix: str = "!") -> str:
    return "\n".join(
        [
            "📖 **Commands**",
            f"`{prefix}tail [N]` - last N lines of the terminal",
            f"`{prefix}help` - this list",
            "Anything else is typed into the terminal.",
        ]
    )


class TailingPaneWriter(Protocol):
    def write(self, target: str, text: str) -> bool: ...

    def capture_tail(self, target: str, lines: int) -> Optional[str]: ...


class ReplyClient(Protocol):
    def send_text(self, room_id: str, text: str) -> str: ...


class CommandRouter:
    def __init__(
        self,
        writer: TailingPaneWriter,
        client: ReplyClient,
        store: SessionStore,
        *,
        prefix: str = "!",
        tail_default: int = 20,
        tail_max: int = 200,
        host: Optional[Callable[[], str]] = None,
    ):
        self.writer = writer
        self.client = client
        self.store = store
        self.prefix = prefix
        self.tail_default = tail_default
        self.tail_max = tail_max
        self._host = host or hostname

    def write(self, target: str, text: str) -> bool:
        parsed = parse_message(text, prefix=self.prefix)
        if parsed.type == CommandType.MESSAGE:
            return self.writer.write(target, text)
        if parsed.type == CommandType.HELP:
            return self._reply(target, format_help(self.prefix))
        if parsed.type == CommandType.TAIL:
            return self._handle_tail(target, parsed.args)
        return self._reply(target, f"❓ Unknown command `{self.prefix}{parsed.name}`. Use `{self.prefix}help`.")

    def _handle_tail(self, target: str, args: List[str]) -> bool:
        n = self.tail_default
        if args:
            try:
                n = int(args[0])
            except ValueError:
                return self._reply(target, f"Usage: `{self.prefix}tail [N]`")
        n = max(1, min(n, self.tail_max))
        out = self.writer.capture_tail(target, n)
        if out is None:
            return self._reply(target, f"❌ Could not read pane `{target}`")
        return self._reply(target, f"```\n{out}\n```")

    def _room_for(self, target: str) -> Optional[str]:
        return self.store.load().rooms.get(f"{self._host()}:{target}")

    def _reply(self, target: str, text: str) -> bool:
        room_id = self._room_for(target)
        if not room_id:
            logger.warning("no room for pane; command reply dropped", extra={"target": target})
            return False
        try:
            self.client.send_text(room_id, text)
        except MatrixError:
            logger.exception("command reply failed", extra={"room_id": room_id})
            return False
        return True
