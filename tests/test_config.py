import tempfile
import unittest
from pathlib import Path

from eventflow.config import Config, load_config


class LoadConfigTests(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.yaml"

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, text: str) -> Path:
        self.path.write_text(text, encoding="utf-8")
        return self.path

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config(self.path)

    def test_empty_file_gives_defaults(self) -> None:
        cfg = load_config(self._write(""))
        self.assertEqual(cfg, Config())
        self.assertEqual(cfg.server.port, 3000)
        self.assertEqual(cfg.performance.max_winners, 10)

    def test_values_are_read(self) -> None:
        cfg = load_config(self._write(
            "server:\n  port: 8080\n"
            "database:\n  path: /tmp/x.db\n"
            "performance:\n  max_winners: 3\n  scoring_enabled: false\n"
            "logging:\n  level: debug\n"
        ))
        self.assertEqual(cfg.server.port, 8080)
        self.assertEqual(cfg.database_path, Path("/tmp/x.db"))
        self.assertEqual(cfg.performance.max_winners, 3)
        self.assertFalse(cfg.performance.scoring_enabled)
        self.assertEqual(cfg.logging.level, "DEBUG")

    def test_invalid_values_raise_value_error(self) -> None:
        for text in (
            "server:\n  port: 70000\n",
            "performance:\n  max_winners: 0\n",
            "logging:\n  level: loud\n",
            "server: [1, 2]\n",
        ):
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    load_config(self._write(text))


if __name__ == "__main__":
    unittest.main()
