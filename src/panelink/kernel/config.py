"""Credentials/config record (`config.json`): homeserver, bot account, recipient."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..paths import config_path
from ..util.fs import atomic_write_json, read_json

DEFAULT_HOMESERVER = "https://matrix.org"


class NotConfiguredError(RuntimeError):
    """Raised when a command needs credentials that `panelink setup` has not stored yet."""


class BridgeConfig(BaseModel):
    homeserver: str = DEFAULT_HOMESERVER
    user: str = ""
    password: str = ""
    recipient: str = ""

    model_config = ConfigDict(extra="ignore")

    def is_configured(self) -> bool:
        return bool(self.homeserver and self.user and self.password and self.recipient)


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    doc = read_json(path or config_path())
    doc = {k: v for k, v in doc.items() if v not in (None, "")}
    try:
        return BridgeConfig.model_validate(doc)
    except ValidationError:
        return BridgeConfig()


def save_config(cfg: BridgeConfig, path: Optional[Path] = None) -> None:
    atomic_write_json(path or config_path(), cfg.model_dump())


def require_config(path: Optional[Path] = None) -> BridgeConfig:
    cfg = load_config(path)
    if not cfg.is_configured():
        raise NotConfiguredError("panelink is not configured yet; run `panelink setup`")
    return cfg
