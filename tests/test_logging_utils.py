import unittest
from unittest import mock

import logging_utils


class TestLoggingUtils(unittest.TestCase):
    def setUp(self):
        self._level = logging_utils.get_log_level()

    def tearDown(self):
        logging_utils.set_log_level(self._level)

    def test_set_and_get_level(self):
        logging_utils.set_log_level("debug")
        self.assertEqual(logging_utils.get_log_level(), "DEBUG")
        logging_utils.set_log_level("nonsense")
        self.assertEqual(logging_utils.get_log_level(), "INFO")

    def test_log_event_appends_fields_and_tag(self):
        with self.assertLogs("beatscope", level="WARNING") as captured:
            logging_utils.log_event("WARN", "Config", "Bad value", key="kick_threshold")

        record = captured.records[0]
        self.assertEqual(record.levelname, "WARNING")
        self.assertEqual(record.tag, "Config")
        self.assertEqual(record.getMessage(), "Bad value | key=kick_threshold")

    def test_observer_formats_floats(self):
        observe = logging_utils.log_observer()
        with mock.patch("logging_utils.log_event") as log_event_mock:
            observe("kick", {"energy": 0.784313, "count": 3})

        log_event_mock.assert_called_once_with("DEBUG", "Beat", "kick", energy="0.7843", count=3)


if __name__ == "__main__":
    unittest.main()
