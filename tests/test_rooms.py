import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch


class TestRoomName(unittest.TestCase):
    def test_hint_and_timestamp_forms(self) -> None:
        from panelink.kernel import rooms

        self.assertEqual(rooms.room_name("box:w:0.1"), "Agent: box:w:0.1")
        self.assertEqual(rooms.room_name("x", prefix="Bot"), "Bot: x")
        with patch.object(rooms, "room_stamp", return_value="2026-01-02 03:04"):
            self.assertEqual(rooms.room_name(None), "Agent 2026-01-02 03:04")
            self.assertEqual(rooms.room_name("   "), "Agent 2026-01-02 03:04")

    def test_room_stamp_format(self) -> None:
        from panelink.util.time import room_stamp

        self.assertEqual(room_stamp(datetime(2026, 3, 4, 5, 6, 7)), "2026-03-04 05:06")


class TestRoomResolver(unittest.TestCase):
    def _store(self, td: str):
        from panelink.kernel.store import SessionStore

        return SessionStore(Path(td) / "session.json")

    def test_reuses_joined_room_without_creating(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.rooms import RoomResolver
        from panelink.kernel.store import SessionRecord

        with tempfile.TemporaryDirectory() as td:
            st = self._store(td)
            st.save(SessionRecord(rooms={"box:w:0.1": "!old:example.org"}))
            client = FakeMatrix(joined=["!old:example.org"])

            room_id, existing = RoomResolver(st).resolve(client, "@me:example.org", "box:w:0.1", "box:w:0.1")

            self.assertEqual(room_id, "!old:example.org")
            self.assertTrue(existing)
            self.assertEqual(client.created, [])
            self.assertEqual(st.load().current_room, "!old:example.org")

    def test_replaces_room_bot_has_left(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.rooms import RoomResolver
        from panelink.kernel.store import SessionRecord

        with tempfile.TemporaryDirectory() as td:
            st = self._store(td)
            st.save(SessionRecord(rooms={"box:w:0.1": "!old:example.org", "box:/p": "!other:example.org"}))
            client = FakeMatrix(joined=["!other:example.org"])

            room_id, existing = RoomResolver(st).resolve(client, "@me:example.org", "box:w:0.1", "box:w:0.1")

            self.assertFalse(existing)
            self.assertNotEqual(room_id, "!old:example.org")
            self.assertEqual(client.created, [("@me:example.org", "Agent: box:w:0.1")])
            rec = st.load()
            self.assertEqual(rec.rooms["box:w:0.1"], room_id)
            self.assertEqual(rec.rooms["box:/p"], "!other:example.org")
            self.assertEqual(rec.current_room, room_id)

    def test_membership_failure_counts_as_stale(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.rooms import RoomResolver
        from panelink.kernel.store import SessionRecord
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            st = self._store(td)
            st.save(SessionRecord(rooms={"k:s:0.0": "!old:example.org"}))
            client = FakeMatrix(joined=["!old:example.org"])
            client.joined_error = MatrixError("boom", status=500)

            room_id, existing = RoomResolver(st).resolve(client, "@me:example.org", "k:s:0.0")

            self.assertFalse(existing)
            self.assertEqual(len(client.created), 1)
            self.assertEqual(st.load().rooms["k:s:0.0"], room_id)

    def test_missing_key_creates_but_does_not_map(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.rooms import RoomResolver

        with tempfile.TemporaryDirectory() as td:
            st = self._store(td)
            client = FakeMatrix()

            with patch("panelink.kernel.rooms.room_stamp", return_value="2026-01-01 00:00"):
                room_id, existing = RoomResolver(st).resolve(client, "@me:example.org", None)

            self.assertFalse(existing)
            self.assertEqual(client.created, [("@me:example.org", "Agent 2026-01-01 00:00")])
            rec = st.load()
            self.assertEqual(rec.rooms, {})
            self.assertEqual(rec.current_room, room_id)

    def test_create_failure_propagates_and_leaves_store(self) -> None:
        from _support import FakeMatrix
        from panelink.kernel.rooms import RoomResolver
        from panelink.kernel.store import SessionRecord
        from panelink.ports.matrix import MatrixError

        with tempfile.TemporaryDirectory() as td:
            st = self._store(td)
            st.save(SessionRecord(rooms={"k:s:0.0": "!gone:example.org"}))
            client = FakeMatrix()
            client.create_error = MatrixError("forbidden", status=403, errcode="M_FORBIDDEN")

            with self.assertRaises(MatrixError):
                RoomResolver(st).resolve(client, "@me:example.org", "k:s:0.0")

            self.assertEqual(st.load().rooms, {"k:s:0.0": "!gone:example.org"})


if __name__ == "__main__":
    unittest.main()
