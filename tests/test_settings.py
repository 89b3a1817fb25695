import tempfile
import unittest
from pathlib import Path


class TestSettings(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        from panelink.kernel.settings import Settings, load_settings

        with tempfile.TemporaryDirectory() as td:
            s = load_settings(Path(td) / "settings.yaml")
        self.assertEqual(s, Settings())
        self.assertEqual(s.command_prefix, "!")
        self.assertEqual(s.inject_hooks_for, ["claude"])
        self.assertEqual(s.refresh_interval_s, 10)

    def test_yaml_overrides_and_coercion(self) -> None:
        from panelink.kernel.settings import load_settings

        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "settings.yaml"
            p.write_text(
                "\n".join(
                    [
                        "refresh_interval_s: '5'",
                        "tail_max_lines: -3",
                        "command_prefix: '.'",
                        "inject_hooks_for: claude-dev",
                        "room_name_prefix: Bot",
                    ]
                ),
                encoding="utf-8",
            )
            s = load_settings(p)
        self.assertEqual(s.refresh_interval_s, 5)
        self.assertEqual(s.tail_max_lines, 200)
        self.assertEqual(s.command_prefix, ".")
        self.assertEqual(s.inject_hooks_for, ["claude-dev"])
        self.assertEqual(s.room_name_prefix, "Bot")

    def test_broken_yaml_gives_defaults(self) -> None:
        from panelink.kernel.settings import Settings, load_settings

        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "settings.yaml"
            p.write_text("a: [unclosed", encoding="utf-8")
            self.assertEqual(load_settings(p), Settings())
            p.write_text("- just\n- a list\n", encoding="utf-8")
            self.assertEqual(load_settings(p), Settings())

    def test_save_then_load(self) -> None:
        from panelink.kernel.settings import Settings, load_settings, save_settings

        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "settings.yaml"
            save_settings(Settings(tail_default_lines=7, inject_hooks_for=["claude", "codex"]), p)
            s = load_settings(p)
        self.assertEqual(s.tail_default_lines, 7)
        self.assertEqual(s.inject_hooks_for, ["claude", "codex"])


if __name__ == "__main__":
    unittest.main()
