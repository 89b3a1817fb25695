from __future__ import annotations

import os
import tempfile
from pathlib import Path


def panelink_home() -> Path:
    env = os.environ.get("PANELINK_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".panelink").resolve()


def ensure_home() -> Path:
    home = panelink_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def config_path() -> Path:
    return ensure_home() / "config.json"


def session_path() -> Path:
    return ensure_home() / "session.json"


def settings_path() -> Path:
    return ensure_home() / "settings.yaml"


def logs_dir() -> Path:
    return ensure_home() / "logs"


def relay_socket_dir() -> Path:
    # Hook processes find the socket through $PANELINK_SOCKET; the directory only
    # has to be short enough for AF_UNIX path limits.
    return Path(tempfile.gettempdir())
