import json
import os
import tempfile
import unittest
from pathlib import Path


def _coordinator(td, client, **kw):
    from _support import RecordingWriter
    from panelink.coordinator import Coordinator
    from panelink.kernel.config import BridgeConfig
    from panelink.kernel.identity import SessionContext
    from panelink.kernel.settings import Settings
    from panelink.kernel.store import SessionStore

    ctx = kw.pop("context", None) or SessionContext(session_key="box:/p", hostname="box", cwd="/p")
    return Coordinator(
        BridgeConfig(homeserver="https://hs", user="bot", password="pw", recipient="@me:example.org"),
        kw.pop("settings", None) or Settings(),
        client,
        store=SessionStore(Path(td) / "session.json"),
        writer=RecordingWriter(),
        context=ctx,
        **kw,
    )


class TestHelpers(unittest.TestCase):
    def test_exit_code_follows_shell_convention(self) -> None:
        from panelink.coordinator import exit_code

        self.assertEqual(exit_code(0), 0)
        self.assertEqual(exit_code(3), 3)
        self.assertEqual(exit_code(-15), 143)
        self.assertEqual(exit_code(-2), 130)

    def test_hooks_injected_only_for_known_programs(self) -> None:
        from panelink.coordinator import build_child_argv
        from panelink.kernel.settings import Settings

        argv = build_child_argv("/usr/local/bin/claude", ["--resume"], "/tmp/s.sock", Settings())
        self.assertEqual(argv[0], "/usr/local/bin/claude")
        self.assertEqual(argv[1], "--settings")
        self.assertIn("/tmp/s.sock", json.loads(argv[2])["hooks"]["Stop"][0]["hooks"][0]["command"])
        self.assertEqual(argv[3:], ["--resume"])

        self.assertEqual(build_child_argv("bash", ["-l"], "/tmp/s.sock", Settings()), ["bash", "-l"])


class TestHandleHook(unittest.TestCase):
    def test_hook_becomes_notification(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            coord = _coordinator(td, client)
            coord.handle_hook(HookPayload(hook_event_name="SessionStart", cwd="/p"))
            self.assertEqual(len(client.sent), 1)
            self.assertIn("Agent Session Started", client.sent[0][1])
            self.assertEqual(coord.context.current_room, client.sent[0][0])

    def test_ignored_hook_sends_nothing(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            _coordinator(td, client).handle_hook(HookPayload(hook_event_name="UserPromptSubmit"))
            self.assertEqual(client.sent, [])
            self.assertEqual(client.created, [])

    def test_transport_failure_is_swallowed(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            client.create_error = MatrixError("homeserver down", status=503)
            _coordinator(td, client).handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            self.assertEqual(client.sent, [])

    def test_expired_token_logs_in_once_and_retries(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.ports.matrix import MatrixError

        class Expiring(FakeMatrix):
            def send_text(self, room_id, text):
                if not self.logins:
                    raise MatrixError("token expired", status=401, errcode="M_UNKNOWN_TOKEN")
                return super().send_text(room_id, text)

        with tempfile.TemporaryDirectory() as td:
            client = Expiring()
            coord = _coordinator(td, client)
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            self.assertEqual(client.logins, [("bot", "pw")])
            self.assertEqual(len(client.sent), 1)
            self.assertEqual(coord.store.load().access_token, "fresh-token")

    def test_rejected_relogin_is_swallowed(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            client.send_error = MatrixError("token expired", status=401, errcode="M_UNKNOWN_TOKEN")
            client.login_error = MatrixError("bad password", status=403, errcode="M_FORBIDDEN")
            _coordinator(td, client).handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            self.assertEqual(len(client.logins), 1)
            self.assertEqual(client.sent, [])

    def test_forbidden_room_creation_does_not_relogin(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            client.create_error = MatrixError("invite rejected", status=403, errcode="M_FORBIDDEN")
            coord = _coordinator(td, client)
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            self.assertEqual(client.logins, [])

    def test_typing_failure_after_send_is_not_resent(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            client.typing_error = MatrixError("token expired", status=401, errcode="M_UNKNOWN_TOKEN")
            _coordinator(td, client).handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            self.assertEqual(len(client.sent), 1)
            self.assertEqual(client.logins, [])

    def test_directory_sessions_follow_hook_cwd(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            coord = _coordinator(td, client)
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/p"))
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/q"))
            rooms = coord.store.load().rooms
            self.assertIn("box:/p", rooms)
            self.assertIn("box:/q", rooms)
            self.assertNotEqual(rooms["box:/p"], rooms["box:/q"])

    def test_pane_sessions_ignore_hook_cwd(self) -> None:
        from _support import FakeMatrix
        from panelink.contracts.v1 import HookPayload
        from panelink.kernel.identity import SessionContext

        with tempfile.TemporaryDirectory() as td:
            client = FakeMatrix()
            ctx = SessionContext(session_key="box:w:0.1", hostname="box", tmux_pane="w:0.1", cwd="/p")
            coord = _coordinator(td, client, context=ctx)
            coord.handle_hook(HookPayload(hook_event_name="Stop", cwd="/elsewhere"))
            self.assertEqual(list(coord.store.load().rooms), ["box:w:0.1"])


class TestRun(unittest.TestCase):
    def test_child_sees_socket_and_exit_code_propagates(self) -> None:
        from _support import FakeMatrix

        with tempfile.TemporaryDirectory() as td:
            coord = _coordinator(td, FakeMatrix())
            marker = Path(td) / "socket.txt"
            rc = coord.run("sh", ["-c", f'printf %s "$PANELINK_SOCKET" > "{marker}"; exit 3'])
            self.assertEqual(rc, 3)
            sock = marker.read_text(encoding="utf-8")
            self.assertTrue(sock.endswith(".sock"))
            self.assertFalse(os.path.exists(sock))
            self.assertFalse(coord.relay.running)

    def test_spawn_failure_returns_one(self) -> None:
        from _support import FakeMatrix

        with tempfile.TemporaryDirectory() as td:
            coord = _coordinator(td, FakeMatrix())
            self.assertEqual(coord.run("/nonexistent/panelink-test-program", []), 1)
            self.assertFalse(coord.relay.running)

    def test_listener_disabled_outside_tmux(self) -> None:
        from _support import FakeMatrix
        from panelink.bridge.listener import ListenerState

        with tempfile.TemporaryDirectory() as td:
            coord = _coordinator(td, FakeMatrix())
            try:
                coord.start()
                self.assertEqual(coord.listener.state, ListenerState.STOPPED)
                self.assertTrue(coord.relay.running)
            finally:
                coord.stop()

    def test_listener_scoped_to_own_pane(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.identity import SessionContext

        with tempfile.TemporaryDirectory() as td:
            ctx = SessionContext(session_key="box:w:0.1", hostname="box", tmux_pane="w:0.1", cwd="/p")
            self.assertEqual(_coordinator(td, FakeMatrix(), context=ctx).listener.target_filter, "w:0.1")
            self.assertIsNone(_coordinator(td, FakeMatrix(), context=ctx, all_panes=True).listener.target_filter)


if __name__ == "__main__":
    unittest.main()
