import io
import logging
import tempfile
import unittest
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from unittest import mock

from primer_cache.config.models import FileLoggingSettings, LoggingSettings
from primer_cache.logging import init_logging


class InitLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        root = logging.getLogger()
        self._saved = (root.level, list(root.handlers))
        self._saved_library = {name: logging.getLogger(name).level for name in ("aiohttp", "asyncio", "noisy")}

    def tearDown(self) -> None:
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        level, handlers = self._saved
        root.setLevel(level)
        for handler in handlers:
            root.addHandler(handler)
        for name, library_level in self._saved_library.items():
            logging.getLogger(name).setLevel(library_level)

    def test_invalid_level_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            init_logging(LoggingSettings(level="chatty"))

    def test_invalid_library_level_is_rejected_before_handlers_change(self) -> None:
        before = list(logging.getLogger().handlers)

        with self.assertRaises(ValueError):
            init_logging(LoggingSettings(library_levels={"noisy": "loud"}))

        self.assertEqual(logging.getLogger().handlers, before)

    def test_stream_only_by_default(self) -> None:
        init_logging(LoggingSettings(level="info"))

        root = logging.getLogger()
        self.assertEqual(root.level, logging.INFO)
        self.assertEqual(len(root.handlers), 1)

    def test_records_go_to_stderr_unless_stdout_requested(self) -> None:
        stderr, stdout = io.StringIO(), io.StringIO()
        with mock.patch("sys.stderr", stderr), mock.patch("sys.stdout", stdout):
            init_logging(LoggingSettings(level="INFO"))
            logging.getLogger("primer_cache.test").info("Bundle refreshed. bundle=alpha")

            init_logging(LoggingSettings(level="INFO", stream="stdout"))
            logging.getLogger("primer_cache.test").info("Registry fetched. bundles=2")

        self.assertIn("Bundle refreshed. bundle=alpha", stderr.getvalue())
        self.assertNotIn("Registry fetched", stderr.getvalue())
        self.assertIn("Registry fetched. bundles=2", stdout.getvalue())

    def test_library_loggers_are_pinned(self) -> None:
        init_logging(LoggingSettings(level="DEBUG", library_levels={"aiohttp": "error", "noisy": "INFO"}))

        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        self.assertEqual(logging.getLogger("aiohttp").level, logging.ERROR)
        self.assertFalse(logging.getLogger("aiohttp.client").isEnabledFor(logging.WARNING))
        self.assertEqual(logging.getLogger("noisy").level, logging.INFO)
        self.assertTrue(logging.getLogger("primer_cache.cache").isEnabledFor(logging.DEBUG))

    def test_default_quiets_aiohttp(self) -> None:
        init_logging(LoggingSettings(level="DEBUG"))

        self.assertFalse(logging.getLogger("aiohttp.access").isEnabledFor(logging.INFO))

    def test_file_handler_when_path_set(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logs" / "primer.log"
            init_logging(LoggingSettings(level="DEBUG", file=FileLoggingSettings(path=str(path))))

            handlers = logging.getLogger().handlers
            self.assertTrue(any(isinstance(h, TimedRotatingFileHandler) for h in handlers))
            self.assertTrue(path.parent.is_dir())
            for handler in list(handlers):
                logging.getLogger().removeHandler(handler)
                handler.close()


if __name__ == "__main__":
    unittest.main()
