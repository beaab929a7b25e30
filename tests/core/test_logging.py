import logging
import unittest

from tokenforge.config import LOG_LEVEL
from tokenforge.core.logging import configure_logging, get_logger


class Foo:
    pass


class LoggingTestCase(unittest.TestCase):
    def tearDown(self) -> None:
        configure_logging(level=logging.DEBUG)

    def test_configure_logging(self):
        configure_logging(level=logging.INFO)
        self.assertEqual(logging.getLogger().level, logging.INFO)

        with self.assertLogs("Foo", level=logging.INFO) as logs:
            get_logger(Foo()).info("hello")
        self.assertEqual(logs.records[0].getMessage(), "hello")

    def test_default_level_is_configured_from_environment(self):
        configure_logging()
        self.assertEqual(logging.getLogger().level, logging.getLevelName(LOG_LEVEL))

    def test_get_logger(self):
        self.assertEqual(get_logger(Foo()).name, "Foo")
        self.assertEqual(get_logger(Foo(), "bar").name, "Foo.bar")


if __name__ == "__main__":
    unittest.main()
