"""Tuning settings stored in ~/.panelink/settings.yaml.

Every key is optional; a missing or broken file yields the defaults.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml  # type: ignore

from ..paths import settings_path
from ..util.conv import coerce_int
from ..util.fs import atomic_write_text

logger = logging.getLogger("panelink.settings")


@dataclass
class Settings:
    refresh_interval_s: int = 10
    typing_timeout_ms: int = 30000
    sync_timeout_ms: int = 30000
    command_prefix: str = "!"
    tail_default_lines: int = 20
    tail_max_lines: int = 200
    room_name_prefix: str = "Agent"
    hook_timeout_s: int = 10
    inject_hooks_for: List[str] = field(default_factory=lambda: ["claude"])
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Settings":
        base = cls()
        programs = d.get("inject_hooks_for")
        if isinstance(programs, str):
            programs = [programs]
        if not isinstance(programs, list):
            programs = base.inject_hooks_for
        prefix = str(d.get("command_prefix") or "").strip() or base.command_prefix
        return cls(
            refresh_interval_s=coerce_int(d.get("refresh_interval_s"), default=base.refresh_interval_s, minimum=1),
            typing_timeout_ms=coerce_int(d.get("typing_timeout_ms"), default=base.typing_timeout_ms, minimum=1000),
            sync_timeout_ms=coerce_int(d.get("sync_timeout_ms"), default=base.sync_timeout_ms, minimum=0),
            command_prefix=prefix,
            tail_default_lines=coerce_int(d.get("tail_default_lines"), default=base.tail_default_lines, minimum=1),
            tail_max_lines=coerce_int(d.get("tail_max_lines"), default=base.tail_max_lines, minimum=1),
            room_name_prefix=str(d.get("room_name_prefix") or "").strip() or base.room_name_prefix,
            hook_timeout_s=coerce_int(d.get("hook_timeout_s"), default=base.hook_timeout_s, minimum=1),
            inject_hooks_for=[str(p).strip() for p in programs if str(p).strip()],
            log_level=str(d.get("log_level") or "").strip() or base.log_level,
        )


def load_settings(path: Optional[Path] = None) -> Settings:
    p = path or settings_path()
    if not p.exists():
        return Settings()
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("settings.yaml unreadable, using defaults: %s", e)
        return Settings()
    if not isinstance(doc, dict):
        return Settings()
    return Settings.from_dict(doc)


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    p = path or settings_path()
    atomic_write_text(p, yaml.safe_dump(settings.to_dict(), sort_keys=False, allow_unicode=True), mode=0o644)
