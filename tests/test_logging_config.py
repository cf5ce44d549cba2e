import logging
import unittest
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

from realtime_session.config import logging_config
from realtime_session.config.logging_config import configure_logging


class TestLoggingConfig(unittest.TestCase):
    def test_configure_logging(self):
        # Test that the function returns a logger
        logger = configure_logging()
        self.assertIsInstance(logger, logging.Logger)

        # Test that the logger has the correct name
        self.assertEqual(logger.name, "realtime_session")

        # Test that the logger does not propagate to the root logger
        self.assertFalse(logger.propagate)

        # Test that the first handler is the console handler with the shared format
        self.assertGreaterEqual(len(logger.handlers), 1)
        handler = logger.handlers[0]
        self.assertIsInstance(handler, logging.StreamHandler)
        formatter = handler.formatter
        self.assertEqual(formatter._fmt, "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def test_level_argument(self):
        logger = configure_logging("debug")
        self.assertEqual(logger.level, logging.DEBUG)
        logger = configure_logging("not-a-level")
        self.assertEqual(logger.level, logging.INFO)

    def test_reconfigure_does_not_duplicate_handlers(self):
        first = len(configure_logging().handlers)
        second = len(configure_logging().handlers)
        self.assertEqual(first, second)

    def test_file_handler_failure_keeps_console(self):
        with patch.object(logging_config, "RotatingFileHandler", side_effect=OSError("read-only")):
            logger = configure_logging()
        self.assertEqual(len(logger.handlers), 1)
        self.assertNotIsInstance(logger.handlers[0], RotatingFileHandler)


if __name__ == "__main__":
    unittest.main()
