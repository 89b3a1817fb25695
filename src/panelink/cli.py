from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import __version__
from .bridge.events import typed_event_from_hook
from .bridge.notifier import Notifier
from .contracts.v1 import HookPayload, parse_typed_event
from .coordinator import Coordinator
from .kernel.config import NotConfiguredError, require_config
from .kernel.identity import detect_context
from .kernel.rooms import RoomResolver
from .kernel.settings import load_settings
from .kernel.store import SessionStore
from .paths import logs_dir
from .ports.matrix.client import MatrixError, open_client
from .relay import client as relay_client
from .util.obslog import setup_logging


def _not_configured(e: NotConfiguredError) -> int:
    print(f"[panelink] {e}", file=sys.stderr)
    print("Run: panelink setup", file=sys.stderr)
    return 2


def cmd_setup(_: argparse.Namespace) -> int:
    from .setup_wizard import run_setup

    return run_setup()


def cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings()
    setup_logging(component="coordinator", log_dir=logs_dir(), level=settings.log_level)
    try:
        cfg = require_config()
    except NotConfiguredError as e:
        return _not_configured(e)

    try:
        client = open_client(cfg)
    except MatrixError as e:
        print(f"[panelink] cannot connect to {cfg.homeserver}: {e}", file=sys.stderr)
        return 1

    argv: List[str] = list(args.argv or [])
    if argv and argv[0] == "--":
        argv = argv[1:]
    program = args.program
    coord = Coordinator(cfg, settings, client, all_panes=bool(args.all_panes))
    return coord.run(program, argv)


def _read_stdin_event(raw: str) -> Any:
    obj = json.loads(raw)
    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    if "kind" in obj:
        return parse_typed_event(obj)
    return typed_event_from_hook(HookPayload.model_validate(obj))


def cmd_notify(args: argparse.Namespace) -> int:
    settings = load_settings()
    setup_logging(component="notify", log_dir=logs_dir(), level=settings.log_level)
    try:
        cfg = require_config()
    except NotConfiguredError as e:
        return _not_configured(e)

    store = SessionStore()
    try:
        client = open_client(cfg, store)
    except MatrixError as e:
        print(f"[panelink] cannot connect to {cfg.homeserver}: {e}", file=sys.stderr)
        return 1

    ctx = detect_context()
    notifier = Notifier(
        client,
        RoomResolver(store, prefix=settings.room_name_prefix),
        cfg.recipient,
        typing_timeout_ms=settings.typing_timeout_ms,
    )

    message = " ".join(args.message or []).strip()
    try:
        if message:
            room_id, _ = notifier.send_message(message, ctx)
        else:
            raw = sys.stdin.read()
            if not raw.strip():
                print('Usage: panelink notify "message"  |  echo \'{"kind":"stop"}\' | panelink notify')
                return 2
            try:
                event = _read_stdin_event(raw)
            except (ValueError, ValidationError) as e:
                print(f"[panelink] invalid event: {e}", file=sys.stderr)
                return 2
            if event is None:
                return 0
            room_id, _ = notifier.notify(event, ctx)
    except MatrixError as e:
        print(f"[panelink] send failed: {e}", file=sys.stderr)
        return 1

    out: Dict[str, Any] = {"ok": True, "room_id": room_id, "session_key": ctx.session_key}
    print(json.dumps(out, ensure_ascii=False))
    return 0


def cmd_hook(_: argparse.Namespace) -> int:
    return relay_client.main()


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="panelink", description="Relay terminal agent prompts to Matrix and replies back")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_setup = sub.add_parser("setup", help="Collect and verify Matrix credentials")
    p_setup.set_defaults(func=cmd_setup)

    p_run = sub.add_parser("run", help="Run a program with notifications and reply relay")
    p_run.add_argument("--all-panes", action="store_true", help="Deliver replies for every mapped pane, not just this one")
    p_run.add_argument("program", help="Program to run (e.g. claude)")
    p_run.add_argument("argv", nargs=argparse.REMAINDER, help="Arguments passed to the program")
    p_run.set_defaults(func=cmd_run)

    p_notify = sub.add_parser("notify", help="Send a message (args) or a typed event (JSON on stdin) to this session's room")
    p_notify.add_argument("message", nargs="*", help="Message text")
    p_notify.set_defaults(func=cmd_notify)

    p_hook = sub.add_parser("hook", help="Hook entry point: forward stdin to $PANELINK_SOCKET (always exits 0)")
    p_hook.set_defaults(func=cmd_hook)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
